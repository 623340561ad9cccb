"""Audit logging service.

Entries are added to the caller's session so they commit or roll back
together with the change they describe.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy.orm import Session

from stockledger.models.audit_log import AuditLog

logger = logging.getLogger("audit")


@dataclass
class AuditContext:
    """Who performed an operation, as established by the access-control layer."""

    user_id: Optional[int] = None
    user_role: Optional[str] = None
    meta: dict[str, Any] = field(default_factory=dict)


def log_action(
    db: Session,
    action: str,
    entity_type: str,
    entity_id: Any = None,
    ctx: Optional[AuditContext] = None,
    before: Optional[dict[str, Any]] = None,
    after: Optional[dict[str, Any]] = None,
    details: Optional[dict[str, Any]] = None,
) -> AuditLog:
    """Add an audit log entry to the current transaction.

    Args:
        db: Session of the unit of work performing the change.
        action: Action code, e.g. ``STOCKCOUNT_POST``.
        entity_type: Type of entity affected (StockCount, StockCountLine, ...).
        entity_id: ID of the affected entity.
        ctx: Acting user, if known.
        before: Snapshot of the relevant fields before the change.
        after: Snapshot of the relevant fields after the change.
        details: Extra context (request meta, diff previews, ...).
    """
    ctx = ctx or AuditContext()
    merged_details = {**ctx.meta, **(details or {})}
    entry = AuditLog(
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        user_id=ctx.user_id,
        user_role=ctx.user_role,
        before=before,
        after=after,
        details=merged_details or None,
    )
    db.add(entry)
    logger.info("%s %s=%s user=%s", action, entity_type, entity_id, ctx.user_id)
    return entry
