"""Lot certification status and its transition table."""

from enum import Enum

from src.common.exceptions.custom_exceptions import InvalidPayloadError


class LotStatus(str, Enum):
    PENDING = "PENDING"
    CERTIFIED = "CERTIFIED"
    REJECTED = "REJECTED"
    IN_STOCK = "IN_STOCK"
    ACTIVE = "ACTIVE"
    DISTRIBUTED = "DISTRIBUTED"

    def __str__(self) -> str:
        return self.value


INITIAL_STATUS = LotStatus.PENDING

ALLOWED_TRANSITIONS: dict[LotStatus, frozenset[LotStatus]] = {
    LotStatus.PENDING: frozenset({LotStatus.CERTIFIED, LotStatus.REJECTED}),
    LotStatus.CERTIFIED: frozenset({LotStatus.IN_STOCK, LotStatus.ACTIVE, LotStatus.DISTRIBUTED}),
    LotStatus.IN_STOCK: frozenset({LotStatus.ACTIVE, LotStatus.DISTRIBUTED}),
    LotStatus.ACTIVE: frozenset({LotStatus.DISTRIBUTED}),
    LotStatus.REJECTED: frozenset(),
    LotStatus.DISTRIBUTED: frozenset(),
}

# Statuses whose stock may seed the next generation
DERIVATION_ELIGIBLE: frozenset[LotStatus] = frozenset({LotStatus.CERTIFIED, LotStatus.IN_STOCK, LotStatus.ACTIVE})

# No quantity-affecting operation is legal past these
TERMINAL_STATUSES: frozenset[LotStatus] = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)


def to_status(value: object) -> LotStatus:
    """Accepts a LotStatus, its DB code, or the UI spelling ("in-stock")."""
    if isinstance(value, LotStatus):
        return value
    if isinstance(value, str):
        try:
            return LotStatus(value.strip().upper().replace("-", "_"))
        except ValueError:
            pass
    raise InvalidPayloadError("status", f"unknown lot status {value!r}")


def can_transition(current: LotStatus, requested: LotStatus) -> bool:
    return requested in ALLOWED_TRANSITIONS[current]


def is_terminal(status: LotStatus) -> bool:
    return status in TERMINAL_STATUSES
