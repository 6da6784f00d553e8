"""Seed generation levels and the rules that order them."""

from enum import Enum

from src.common.exceptions.custom_exceptions import InvalidLevelError


class SeedLevel(str, Enum):
    """Certification depth of a lot, from the origin GO down to R2."""

    GO = "GO"
    G1 = "G1"
    G2 = "G2"
    G3 = "G3"
    G4 = "G4"
    R1 = "R1"
    R2 = "R2"

    def __str__(self) -> str:
        return self.value


LEVEL_SEQUENCE: tuple[SeedLevel, ...] = tuple(SeedLevel)

# Older records spell the origin level with a zero
_LEVEL_ALIASES = {"G0": SeedLevel.GO}

MAX_LOT_QUANTITY = 1_000_000.0  # kg

# Advisory bag minimums per level, in kg
_MINIMUM_QUANTITIES = {
    SeedLevel.GO: 50.0,
    SeedLevel.G1: 100.0,
    SeedLevel.G2: 200.0,
    SeedLevel.G3: 300.0,
    SeedLevel.G4: 500.0,
    SeedLevel.R1: 1000.0,
    SeedLevel.R2: 2000.0,
}

# Default shelf life per level, in months
_SHELF_LIFE_MONTHS = {
    SeedLevel.GO: 12,
    SeedLevel.G1: 18,
    SeedLevel.G2: 18,
    SeedLevel.G3: 24,
    SeedLevel.G4: 24,
    SeedLevel.R1: 36,
    SeedLevel.R2: 36,
}


def to_level(value: object) -> SeedLevel:
    """Coerces a SeedLevel or its string code; raises InvalidLevelError otherwise."""
    if isinstance(value, SeedLevel):
        return value
    if isinstance(value, str):
        code = value.strip().upper()
        if code in _LEVEL_ALIASES:
            return _LEVEL_ALIASES[code]
        try:
            return SeedLevel(code)
        except ValueError:
            pass
    raise InvalidLevelError(value)


def rank_of(level: object) -> int:
    """Ordinal position of a level: GO is 0, R2 is 6."""
    return LEVEL_SEQUENCE.index(to_level(level))


def parent_level_of(level: object) -> SeedLevel | None:
    """The level a lot of `level` must be derived from, or None for the origin level."""
    rank = rank_of(level)
    if rank == 0:
        return None
    return LEVEL_SEQUENCE[rank - 1]


def next_level_of(level: object) -> SeedLevel | None:
    rank = rank_of(level)
    if rank + 1 >= len(LEVEL_SEQUENCE):
        return None
    return LEVEL_SEQUENCE[rank + 1]


def can_have_children(level: object) -> bool:
    return next_level_of(level) is not None


def is_valid_derivation(parent_level: object, child_level: object) -> bool:
    """True when `child_level` is the exact successor of `parent_level`."""
    return rank_of(child_level) == rank_of(parent_level) + 1


def minimum_quantity_of(level: object) -> float:
    return _MINIMUM_QUANTITIES[to_level(level)]


def meets_minimum_quantity(level: object, quantity: float) -> bool:
    return quantity >= minimum_quantity_of(level)


def shelf_life_months_of(level: object) -> int:
    return _SHELF_LIFE_MONTHS[to_level(level)]
