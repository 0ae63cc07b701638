class SchedulingError(RuntimeError):
    """Base for every guard failure raised by the scheduling core."""

    code = "scheduling_error"
    retryable = False

    def __init__(self, message: str, rule: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.rule = rule


class NotFoundError(SchedulingError):
    """Raised when a business, service, staff member or appointment is missing or inactive."""

    code = "not_found"


class InvalidTransitionError(SchedulingError):
    """Raised for an illegal appointment state-machine edge."""

    code = "invalid_transition"


class WindowViolationError(SchedulingError):
    """Raised when an advance, cancellation, reschedule or calendar window is broken."""

    code = "window_violation"


class LimitExceededError(SchedulingError):
    code = "limit_exceeded"


class SlotTakenError(SchedulingError):
    """Raised when the requested slot is already held, including lost races."""

    code = "slot_taken"
    retryable = True


class UnauthorizedError(SchedulingError):
    code = "unauthorized"


class StoreTimeoutError(SchedulingError):
    """Raised when a store operation exceeds its bound. No mutation is assumed to have happened."""

    code = "timeout"
    retryable = True
