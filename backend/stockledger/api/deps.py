"""Request-scoped helpers shared by route modules."""

from fastapi import Request

from stockledger.core.rbac import TokenData
from stockledger.services.audit_service import AuditContext


def audit_context(request: Request, user: TokenData) -> AuditContext:
    """Build the audit context for the authenticated caller."""
    return AuditContext(
        user_id=user.user_id,
        user_role=user.role.value,
        meta={
            "ip": request.client.host if request.client else None,
            "user_agent": request.headers.get("user-agent"),
            "path": request.url.path,
            "method": request.method,
        },
    )
