from datetime import datetime

from pydantic import BaseModel, Field


class AuditLog(BaseModel):
    """Immutable record of an admin command (declare, review, credit).

    Insert-only. No updates or deletes permitted on this collection.
    """

    timestamp: datetime
    actor_id: str  # Admin user id or "SYSTEM"
    target_id: str  # Game-ID, request id, user id
    action: str  # e.g. "RESULT_DECLARE", "REQUEST_APPROVE"
    outcome: str = "success"  # success or the domain error code
    metadata: dict = Field(default_factory=dict)
    ip_truncated: str = ""  # e.g. "192.168.1.xxx"
