class WorkflowError(Exception):
    """Base class for every failure the participation workflow reports to callers."""
    http_status = 400
    default_code = "WORKFLOW_ERROR"

    def __init__(self, message: str, code: str = None):
        self.message = message
        self.code = code or self.default_code
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class ValidationError(WorkflowError):
    http_status = 400
    default_code = "VALIDATION_ERROR"


class NotFound(WorkflowError):
    http_status = 404
    default_code = "NOT_FOUND"


class Conflict(WorkflowError):
    """A uniqueness constraint rejected the write."""
    http_status = 409
    default_code = "CONFLICT"


class CapacityReached(Conflict):
    default_code = "CAPACITY_REACHED"


class Unauthorized(WorkflowError):
    http_status = 403
    default_code = "UNAUTHORIZED"


class NotEligible(WorkflowError):
    http_status = 403
    default_code = "NOT_ELIGIBLE"


class MissingAsset(WorkflowError):
    http_status = 400
    default_code = "MISSING_ASSET"


class InvalidTransition(WorkflowError):
    http_status = 409
    default_code = "INVALID_TRANSITION"

    def __init__(self, from_state: str, to_state: str, reason: str = None):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(reason or f"Cannot transition from {from_state} to {to_state}")
