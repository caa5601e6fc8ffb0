"""Audit trail for admin money commands.

Every declare, review and manual credit leaves one insert-only record in
``audit_logs``, including the ones the domain rejected (outcome = error code).
"""

import logging
from typing import Optional

from fastapi import Request

import matka.database as _db
from matka.models.audit import AuditLog
from matka.utils import utcnow

logger = logging.getLogger("matka.audit")


def _masked_ip(ip: str) -> str:
    """Client address with its last group replaced: 203.0.113.42 -> 203.0.113.xxx."""
    sep = "." if "." in ip else ":"
    head, found, _ = ip.rpartition(sep)
    return f"{head}{sep}xxx" if found and head else ip


def _client_ip(request: Optional[Request]) -> str:
    if request is None:
        return ""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else ""


async def log_audit(
    *,
    actor_id: str,
    target_id: str,
    action: str,
    outcome: str = "success",
    metadata: Optional[dict] = None,
    request: Optional[Request] = None,
) -> None:
    """Record one admin command.

    Called after the command's transaction has committed (or been rejected),
    so a failure here never rolls back money movement.
    """
    entry = AuditLog(
        timestamp=utcnow(),
        actor_id=actor_id,
        target_id=target_id,
        action=action,
        outcome=outcome,
        metadata=metadata or {},
        ip_truncated=_masked_ip(_client_ip(request)),
    )

    try:
        await _db.db.audit_logs.insert_one(entry.model_dump())
    except Exception:
        # The command already committed; losing its audit line must not turn
        # a successful payout into an error response.
        logger.exception("Failed to write audit log: action=%s actor=%s", action, actor_id)
