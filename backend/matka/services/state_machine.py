"""Pending -> terminal transitions shared by bets, game days and requests.

The transition is a single conditional write: the filter pins the expected
current status, so of two concurrent callers only one matches. The loser gets
``None`` back and decides how to report it (no-op, AlreadyReviewed, ...).
"""

from typing import Any, Iterable, Optional, Union

from pymongo import ReturnDocument


def _status_filter(from_status: Union[str, Iterable[str]]) -> Any:
    if isinstance(from_status, str):
        return from_status
    return {"$in": list(from_status)}


async def transition_once(
    collection,
    query: dict,
    *,
    from_status: Union[str, Iterable[str]],
    to_status: str,
    set_fields: Optional[dict] = None,
    session=None,
) -> Optional[dict]:
    """Move one document from ``from_status`` to ``to_status``.

    Returns the updated document, or None when the document does not exist or
    is no longer in ``from_status``.
    """
    return await collection.find_one_and_update(
        {**query, "status": _status_filter(from_status)},
        {"$set": {"status": to_status, **(set_fields or {})}},
        return_document=ReturnDocument.AFTER,
        session=session,
    )