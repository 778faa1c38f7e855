class MovementError(ValueError):
    """Base for stock movement failures that the caller can recover from."""

    status_code = 400
    code = "movement_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict:
        return {"code": self.code, "message": self.message}


class UnknownItemError(MovementError):
    status_code = 404
    code = "unknown_item"

    def __init__(self, item_id: str):
        super().__init__(f"Inventory item {item_id} not found")
        self.item_id = item_id

    def to_detail(self) -> dict:
        return {**super().to_detail(), "item_id": self.item_id}


class UnknownDepartmentError(MovementError):
    status_code = 404
    code = "unknown_department"

    def __init__(self, department: str):
        super().__init__(f"Department {department} not found")
        self.department = department

    def to_detail(self) -> dict:
        return {**super().to_detail(), "department": self.department}


class InsufficientStockError(MovementError):
    code = "insufficient_stock"

    def __init__(self, item_id: str, department: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock of {item_id} in {department}. Available: {available}, requested: {requested}"
        )
        self.item_id = item_id
        self.department = department
        self.available = available
        self.requested = requested

    def to_detail(self) -> dict:
        return {
            **super().to_detail(),
            "item_id": self.item_id,
            "department": self.department,
            "available": self.available,
            "requested": self.requested,
        }


class PartialTransferError(MovementError):
    """One leg of a transfer was applied and a later one failed."""

    status_code = 409
    code = "partial_transfer"

    def __init__(self, transfer_id: str, completed_legs: list[str], failed_leg: str, cause: str = ""):
        self.transfer_id = transfer_id
        self.completed_legs = list(completed_legs)
        self.failed_leg = failed_leg
        self.cause = cause
        self.rolled_back = False
        super().__init__(self._describe())

    def _describe(self) -> str:
        done = ", ".join(self.completed_legs) or "none"
        msg = f"Transfer partially completed: {done} succeeded, {self.failed_leg} failed"
        if self.cause:
            msg += f" ({self.cause})"
        if self.rolled_back:
            msg += "; changes rolled back"
        return msg

    def mark_rolled_back(self) -> None:
        self.rolled_back = True
        self.message = self._describe()
        self.args = (self.message,)

    def to_detail(self) -> dict:
        return {
            **super().to_detail(),
            "transfer_id": self.transfer_id,
            "completed_legs": self.completed_legs,
            "failed_leg": self.failed_leg,
            "rolled_back": self.rolled_back,
        }


class ConcurrentModificationError(MovementError):
    status_code = 409
    code = "concurrent_modification"

    def __init__(self, keys: list[tuple[str, str]], attempts: int):
        rows = ", ".join(f"{item}@{dept}" for item, dept in keys)
        super().__init__(f"Stock rows {rows} kept changing underneath; gave up after {attempts} attempts")
        self.keys = keys
        self.attempts = attempts


class DuplicateMovementError(MovementError):
    status_code = 409
    code = "duplicate_movement"

    def __init__(self, key: str):
        super().__init__(f"Movement with idempotency key {key} was already recorded")
        self.key = key

    def to_detail(self) -> dict:
        return {**super().to_detail(), "idempotency_key": self.key}


class AccessDeniedError(MovementError):
    status_code = 403
    code = "access_denied"

    def __init__(self, actor_id: str, department: str):
        super().__init__(f"User {actor_id} may not change stock in {department}")
        self.actor_id = actor_id
        self.department = department

    def to_detail(self) -> dict:
        return {**super().to_detail(), "department": self.department}


class RequestAlreadyProcessedError(MovementError):
    status_code = 409
    code = "request_already_processed"

    def __init__(self, request_id: str):
        super().__init__(f"Transfer request {request_id} was already confirmed or rejected")
        self.request_id = request_id

    def to_detail(self) -> dict:
        return {**super().to_detail(), "request_id": self.request_id}
