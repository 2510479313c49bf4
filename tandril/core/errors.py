"""Error types shared by the command, queue and automation modules.

Every user-visible failure carries a human-readable message plus a
machine-distinguishable category. Per-action failures are normally captured
as data (see ActionFailure / QueueError / StepResult); the exceptions here are
raised only at boundaries where the caller must react immediately.
"""

# Error categories
VALIDATION = "validation"
INTERPRETATION = "interpretation"
RESOLUTION = "resolution"
EXECUTION = "execution"
CANCELLED = "cancelled"
POLLING = "polling"


class TandrilError(Exception):
    """Base error with a category tag."""

    category: str = EXECUTION

    def __init__(self, message: str, category: str | None = None):
        super().__init__(message)
        self.message = message
        if category is not None:
            self.category = category


class CommandValidationError(TandrilError):
    """Raised when a command submission is rejected before persistence."""

    category = VALIDATION

    def __init__(self, message: str, field: str):
        super().__init__(message)
        self.field = field


class QuotaExceededError(CommandValidationError):
    """Raised when the caller's monthly command quota is exhausted."""

    def __init__(self, limit: int):
        super().__init__(
            "You have reached your monthly command limit", field="quota"
        )
        self.limit = limit


class InvalidTransitionError(TandrilError):
    """Raised on an illegal command state transition."""

    category = VALIDATION

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move command from '{current}' to '{target}'")
        self.current = current
        self.target = target


class ActionResolutionError(TandrilError):
    """Raised when an action references late-bound data that cannot be found."""

    category = RESOLUTION


class AutomationConfigError(TandrilError):
    """Raised when an automation definition breaks its invariants."""

    category = VALIDATION


class RecordNotFoundError(TandrilError):
    """Raised when a stored record does not exist."""

    category = VALIDATION

    def __init__(self, collection: str, record_id: str):
        super().__init__(f"{collection} record '{record_id}' not found")
        self.collection = collection
        self.record_id = record_id
