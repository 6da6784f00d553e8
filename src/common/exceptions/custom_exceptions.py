"""Custom application-wide exceptions."""


class ApplicationError(Exception):
    """Base class for application-specific errors."""

    def __init__(
        self, message: str = "An application error occurred", original_exception: Exception | None = None
    ) -> None:
        super().__init__(message)
        self.original_exception = original_exception
        self.message = message

    def __str__(self) -> str:
        if self.original_exception:
            return f"{self.message} (Original error: {self.original_exception})"
        return self.message


class DatabaseError(ApplicationError):
    """Exception raised for errors during database operations."""

    def __init__(self, message: str = "Database operation failed", original_exception: Exception | None = None) -> None:
        super().__init__(message, original_exception)
        self.message = f"Database Error: {message}"


# --- Seed lot ledger errors ---


class LedgerError(ApplicationError):
    """Base class for every error raised by the seed lot ledger."""

    kind: str = "ledger"

    @property
    def is_client_error(self) -> bool:
        """True when the caller sent something the ledger refuses, as opposed to a server-side fault."""
        return self.kind in ("validation", "business_rule", "not_found")


class LedgerValidationError(LedgerError):
    """Malformed or out-of-range input, rejected before any state is read."""

    kind = "validation"


class InvalidLevelError(LedgerValidationError):
    def __init__(self, level: object) -> None:
        super().__init__(f"invalid seed level: {level!r}")
        self.level = level


class InvalidQuantityError(LedgerValidationError):
    def __init__(self, quantity: object, reason: str = "quantity must be greater than zero") -> None:
        super().__init__(f"{reason} (got {quantity!r})")
        self.quantity = quantity
        self.reason = reason


class InvalidDateError(LedgerValidationError):
    def __init__(self, field_name: str, value: object, reason: str) -> None:
        super().__init__(f"{field_name}: {reason} (got {value!r})")
        self.field_name = field_name
        self.value = value
        self.reason = reason


class InvalidPayloadError(LedgerValidationError):
    """A transport payload could not be converted into a typed command."""

    def __init__(self, field_name: str, reason: str) -> None:
        super().__init__(f"{field_name}: {reason}")
        self.field_name = field_name
        self.reason = reason


class BusinessRuleError(LedgerError):
    """The request is well-formed but the current ledger state forbids it."""

    kind = "business_rule"


class ParentNotEligibleError(BusinessRuleError):
    def __init__(self, parent_lot_id: str, parent_status: object) -> None:
        super().__init__(f"parent lot {parent_lot_id} has status {parent_status} and cannot seed a new generation")
        self.parent_lot_id = parent_lot_id
        self.parent_status = parent_status


class InvalidLevelSequenceError(BusinessRuleError):
    def __init__(self, parent_level: object, requested_level: object, expected_level: object | None) -> None:
        super().__init__(
            f"level {requested_level} cannot be derived from {parent_level} (expected {expected_level})"
        )
        self.parent_level = parent_level
        self.requested_level = requested_level
        self.expected_level = expected_level


class InsufficientQuantityError(BusinessRuleError):
    def __init__(self, lot_id: str, requested: float, available: float) -> None:
        super().__init__(f"lot {lot_id}: requested {requested} kg, available {available} kg")
        self.lot_id = lot_id
        self.requested = requested
        self.available = available


class InvalidStatusTransitionError(BusinessRuleError):
    def __init__(self, lot_id: str, current: object, requested: object) -> None:
        super().__init__(f"lot {lot_id}: status transition {current} -> {requested} is not allowed")
        self.lot_id = lot_id
        self.current = current
        self.requested = requested


class NoOpTransferError(BusinessRuleError):
    def __init__(self, lot_id: str, custodian_id: object) -> None:
        super().__init__(f"lot {lot_id} is already held by custodian {custodian_id}")
        self.lot_id = lot_id
        self.custodian_id = custodian_id


class LotNotMutableError(BusinessRuleError):
    """Quantity-affecting operation attempted on a lot in a terminal status."""

    def __init__(self, lot_id: str, status: object) -> None:
        super().__init__(f"lot {lot_id} has terminal status {status}; quantity operations are closed")
        self.lot_id = lot_id
        self.status = status


class LotHasChildrenError(BusinessRuleError):
    def __init__(self, lot_id: str, child_count: int) -> None:
        super().__init__(f"lot {lot_id} still has {child_count} active child lot(s)")
        self.lot_id = lot_id
        self.child_count = child_count


class LotNotFoundError(LedgerError):
    kind = "not_found"

    def __init__(self, lot_id: str) -> None:
        super().__init__(f"lot {lot_id} not found")
        self.lot_id = lot_id


class ConsistencyError(LedgerError):
    """Stored state contradicts ledger assumptions, or a race was detected."""

    kind = "consistency"


class BrokenLineageError(ConsistencyError):
    def __init__(self, lot_id: str, missing_lot_id: str | None = None, reason: str = "parent lot is missing") -> None:
        super().__init__(f"lot {lot_id}: {reason}" + (f" ({missing_lot_id})" if missing_lot_id else ""))
        self.lot_id = lot_id
        self.missing_lot_id = missing_lot_id
        self.reason = reason


class ConcurrentModificationError(ConsistencyError):
    def __init__(self, lot_id: str, expected_version: int, actual_version: int | None = None) -> None:
        super().__init__(
            f"lot {lot_id} changed concurrently (expected version {expected_version}, found {actual_version})"
        )
        self.lot_id = lot_id
        self.expected_version = expected_version
        self.actual_version = actual_version
