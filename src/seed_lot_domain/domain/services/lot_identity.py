"""Human-meaningful lot codes, batch labels and default expiry dates."""

import re
from dataclasses import dataclass
from datetime import datetime

from src.common.config.settings import settings
from src.common.exceptions.custom_exceptions import InvalidLevelError
from src.common.utils.date_utils import add_months
from src.seed_lot_domain.domain.entities.seed_level import SeedLevel, shelf_life_months_of, to_level

# SL-G1-2024-DIH-0001
_LOT_ID_PATTERN = re.compile(
    r"^(?P<prefix>[A-Z]+)-(?P<level>[A-Z0-9]{2})-(?P<year>\d{4})-(?P<variety>[A-Z0-9]+)-(?P<sequence>\d{4,})$"
)


@dataclass(frozen=True)
class LotIdParts:
    prefix: str
    level: SeedLevel
    year: int
    variety_code: str
    sequence: int


def normalize_variety_code(variety_code: str | int) -> str:
    """Upper-cases the code and drops separators so it stays a single id segment."""
    return re.sub(r"[^A-Z0-9]", "", str(variety_code).upper()) or "X"


def lot_id_prefix(level: object, variety_code: str | int, year: int, prefix: str | None = None) -> str:
    """The id stem that sequence numbers are counted under, trailing dash included."""
    return f"{prefix or settings.LOT_ID_PREFIX}-{to_level(level).value}-{year}-{normalize_variety_code(variety_code)}-"


def generate_lot_id(
    level: object, variety_code: str | int, year: int, sequence: int, prefix: str | None = None
) -> str:
    return f"{lot_id_prefix(level, variety_code, year, prefix)}{sequence:04d}"


def parse_lot_id(lot_id: str) -> LotIdParts | None:
    """Splits a lot code into its parts; None when it does not follow the format."""
    match = _LOT_ID_PATTERN.match(lot_id or "")
    if not match:
        return None
    try:
        level = to_level(match["level"])
    except InvalidLevelError:
        return None
    return LotIdParts(
        prefix=match["prefix"],
        level=level,
        year=int(match["year"]),
        variety_code=match["variety"],
        sequence=int(match["sequence"]),
    )


def generate_batch_number(variety_code: str | int, on_date: datetime, sequence: int) -> str:
    """Batch label such as SH108-240315-01."""
    return f"{normalize_variety_code(variety_code)}-{on_date.strftime('%y%m%d')}-{sequence % 100:02d}"


def estimate_expiry_date(production_date: datetime, level: object) -> datetime:
    """Production date plus the level's default shelf life."""
    return add_months(production_date, shelf_life_months_of(level))
