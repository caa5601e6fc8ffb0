"""Domain error taxonomy for settlement, approval and ledger commands.

Every error carries a stable ``code`` and tells the caller that no money
moved: these are raised before or inside the transaction, which is aborted.
Infrastructure failures (pymongo) are not wrapped here; the outcome of those
is unknown to the caller and mapped separately in ``matka.main``.
"""

from fastapi import status


class DomainError(Exception):
    code = "domain_error"
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context


# ---------- Validation ----------

class ValidationFailed(DomainError):
    code = "validation_failed"


class InvalidResultShape(ValidationFailed):
    code = "invalid_result_shape"


# ---------- Not found ----------

class GameNotFound(DomainError):
    code = "game_not_found"
    http_status = status.HTTP_404_NOT_FOUND


class RequestNotFound(DomainError):
    code = "request_not_found"
    http_status = status.HTTP_404_NOT_FOUND


# ---------- State conflicts ----------

class StateConflict(DomainError):
    code = "state_conflict"
    http_status = status.HTTP_409_CONFLICT


class GameStillOpen(StateConflict):
    code = "game_still_open"


class GameNotOpen(StateConflict):
    code = "game_not_open"


class ResultAlreadyDeclared(StateConflict):
    code = "result_already_declared"


class AlreadyReviewed(StateConflict):
    code = "already_reviewed"


# ---------- Resources ----------

class InsufficientFunds(DomainError):
    code = "insufficient_funds"
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY


class InsufficientSystemState(DomainError):
    """Stored data is inconsistent (e.g. a bet that no matcher can evaluate)."""

    code = "insufficient_system_state"
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
