"""Domain errors raised by the engine services.

Services never build HTTP responses themselves; ``main.py`` registers one
handler that turns any :class:`EngineError` into the standard error envelope
using ``status_code`` and ``error_code``.
"""


class EngineError(Exception):
    """Base class for all expected engine failures."""

    status_code: int = 400
    error_code: str = "engine_error"
    default_message: str = "Request could not be processed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(EngineError):
    """Quiz, course or attempt is absent, archived, or not owned by the caller."""

    status_code = 404
    error_code = "not_found"
    default_message = "Not found"


class Unauthorized(EngineError):
    """No authenticated user and the item is not free."""

    status_code = 401
    error_code = "unauthorized"
    default_message = "Unauthorized"


class Unavailable(EngineError):
    """The quiz is outside its availability window."""

    status_code = 403
    error_code = "unavailable"
    default_message = "Quiz is not available at this time"


class QuotaExceeded(EngineError):
    status_code = 403
    error_code = "quota_exceeded"
    default_message = "Maximum number of attempts reached"


class AttemptAlreadySubmitted(EngineError):
    status_code = 409
    error_code = "attempt_already_submitted"
    default_message = "Attempt has already been submitted"
