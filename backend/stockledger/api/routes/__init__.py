"""API routes."""

from fastapi import APIRouter

from stockledger.api.routes import movements, stock_counts, stocks

api_router = APIRouter()

api_router.include_router(stock_counts.router, prefix="/stock-counts", tags=["stock-counts"])
api_router.include_router(movements.router, prefix="/movements", tags=["movements"])
api_router.include_router(stocks.router, prefix="/stocks", tags=["stocks"])
