"""
Typed failures raised by the matchmaking and tournament engine.

Three families, matching how callers are expected to react:

- ValidationError: the request itself is wrong (bad roster size, unknown
  mode). Rejected synchronously; retrying the same request cannot succeed.
- ConflictError: the request is well formed but clashes with current state
  (already queued, result already reported, tournament closed). Surfaced to
  the caller as an explicit outcome.
- InvariantViolation: internal state would become inconsistent, which means
  concurrency control failed somewhere. The offending transition is aborted
  before anything is mutated and the error is never absorbed.

Each error carries a stable ``code`` that request handlers can map onto
their own transport (HTTP status, websocket frame, etc.).
"""


class ArenaError(Exception):
    """Base class for every error raised by the engine."""

    code = "ARENA_ERROR"

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, **self.context}


# =============================================================================
# Validation
# =============================================================================

class ValidationError(ArenaError):
    code = "VALIDATION_ERROR"


class InvalidRoster(ValidationError):
    code = "INVALID_ROSTER"


class InvalidBracketType(ValidationError):
    code = "INVALID_BRACKET_TYPE"


class InvalidMode(ValidationError):
    code = "INVALID_MODE"


class InvalidResult(ValidationError):
    code = "INVALID_RESULT"


class InvalidRequest(ValidationError):
    code = "INVALID_REQUEST"


# =============================================================================
# Conflicts
# =============================================================================

class ConflictError(ArenaError):
    code = "CONFLICT"


class AlreadyQueued(ConflictError):
    code = "ALREADY_QUEUED"


class NotQueued(ConflictError):
    code = "NOT_QUEUED"


class AlreadyReported(ConflictError):
    code = "ALREADY_REPORTED"


class UnknownMatch(ConflictError):
    code = "UNKNOWN_MATCH"


class UnknownTournament(ConflictError):
    code = "UNKNOWN_TOURNAMENT"


class TournamentClosed(ConflictError):
    code = "TOURNAMENT_CLOSED"


# =============================================================================
# Internal
# =============================================================================

class InvariantViolation(ArenaError):
    code = "INVARIANT_VIOLATION"
