"""Domain exceptions."""


class BoardviewError(Exception):
    """Base exception for Boardview application."""

    def __init__(self, message: str, code: str = None):
        self.message = message
        self.code = code
        super().__init__(message)


class GenerationFailure(BoardviewError):
    """LLM returned empty, malformed or schema-violating output, or errored."""

    def __init__(self, operation: str, details: str = None):
        self.operation = operation
        message = f"Generation failed in {operation}"
        if details:
            message += f": {details}"

        super().__init__(
            message=message,
            code="GENERATION_FAILURE"
        )


class QuotaExceeded(BoardviewError):
    """User has no consultations left."""

    def __init__(self, user_id: int, used: int, limit: int):
        self.user_id = user_id
        self.used = used
        self.limit = limit
        super().__init__(
            message=f"User {user_id} used {used} of {limit} consultations",
            code="QUOTA_EXCEEDED"
        )


class InvalidStageEvent(BoardviewError):
    """Event is not valid for the current session stage."""

    def __init__(self, stage: str, event: str, notice_key: str):
        self.stage = stage
        self.event = event
        self.notice_key = notice_key
        super().__init__(
            message=f"Event '{event}' is not accepted in stage '{stage}'",
            code="INVALID_STAGE_EVENT"
        )


class TransportConflict(BoardviewError):
    """Another process already holds the Telegram polling connection."""

    def __init__(self, details: str = None):
        message = "Another bot instance holds the polling connection"
        if details:
            message += f": {details}"

        super().__init__(
            message=message,
            code="TRANSPORT_CONFLICT"
        )


class OperatorRequired(BoardviewError):
    """Operator-only capability invoked by a regular user."""

    def __init__(self, user_id: int):
        self.user_id = user_id
        super().__init__(
            message=f"User {user_id} is not an operator",
            code="OPERATOR_REQUIRED"
        )
