# tests/conftest.py
from datetime import datetime
from unittest.mock import Mock

import pytest
import pytz

from src.common.config.settings import settings
from src.common.dtos.seed_lot_dtos import (
    ChangeStatusDTO,
    CreateDerivedLotDTO,
    CreateRootLotDTO,
    LedgerContextDTO,
)
from src.seed_lot_domain.application.seed_lot_service import SeedLotApplicationService
from src.seed_lot_domain.domain.entities.lot_status import LotStatus
from src.seed_lot_domain.domain.entities.seed_level import SeedLevel
from src.seed_lot_domain.domain.repositories.event_sink import IEventSink
from src.seed_lot_domain.domain.services.genealogy_resolver import GenealogyResolver
from src.seed_lot_domain.domain.services.ledger_engine import LedgerEngine
from src.seed_lot_domain.infrastructure.persistence.in_memory_seed_lot_repository import (
    InMemorySeedLotRepository,
)

FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=pytz.utc)
PRODUCTION_DATE = datetime(2024, 3, 15, tzinfo=pytz.utc)


@pytest.fixture(autouse=True)
def mock_settings_ledger_info(mocker) -> None:
    """Pins id prefix and timezone in settings for consistent testing."""
    mocker.patch.object(settings, "LOT_ID_PREFIX", "SL")
    mocker.patch.object(settings, "TIMEZONE", "UTC")
    mocker.patch.object(settings, "EXPIRY_WARNING_DAYS", 30)


@pytest.fixture
def ledger_context() -> LedgerContextDTO:
    """Context with a frozen clock."""
    return LedgerContextDTO(actor_id="inspector-1", clock=lambda: FIXED_NOW)


@pytest.fixture
def lot_repository() -> InMemorySeedLotRepository:
    return InMemorySeedLotRepository()


@pytest.fixture
def mock_event_sink() -> Mock:
    """Mock for the event sink port."""
    return Mock(spec=IEventSink)


@pytest.fixture
def ledger_engine(lot_repository, mock_event_sink) -> LedgerEngine:
    return LedgerEngine(lot_repo=lot_repository, event_sink=mock_event_sink)


@pytest.fixture
def genealogy_resolver(lot_repository) -> GenealogyResolver:
    return GenealogyResolver(lot_repo=lot_repository)


@pytest.fixture
def seed_lot_service(lot_repository, mock_event_sink) -> SeedLotApplicationService:
    return SeedLotApplicationService(lot_repo=lot_repository, event_sink=mock_event_sink)


@pytest.fixture
def root_lot_command() -> CreateRootLotDTO:
    """1000 kg GO lot of variety 7 (code DIH) held by custodian 10."""
    return CreateRootLotDTO(
        variety_id=7,
        quantity=1000.0,
        custodian_id=10,
        production_date=PRODUCTION_DATE,
        variety_code="DIH",
    )


@pytest.fixture
def derived_command():
    """Factory for derivation commands produced on the standard production date."""

    def build(parent_lot_id: str, level: SeedLevel, quantity: float, custodian_id: int = 20) -> CreateDerivedLotDTO:
        return CreateDerivedLotDTO(
            parent_lot_id=parent_lot_id,
            level=level,
            quantity=quantity,
            custodian_id=custodian_id,
            production_date=PRODUCTION_DATE,
        )

    return build


@pytest.fixture
def certify(ledger_engine, ledger_context):
    """Moves a pending lot to CERTIFIED."""

    def run(lot_id: str):
        return ledger_engine.change_status(
            ChangeStatusDTO(lot_id=lot_id, new_status=LotStatus.CERTIFIED), ledger_context
        )

    return run


@pytest.fixture
def lineage(ledger_engine, root_lot_command, ledger_context, derived_command, certify) -> dict:
    """
    L0 (GO, 1000 kg) -> L1 (G1, 400 kg) -> L2 (G2, 150 kg).

    L0 and L1 are certified so they can seed the next generation; L2 stays pending.
    """
    l0 = ledger_engine.create_root_lot(root_lot_command, ledger_context)
    certify(l0.id)
    l1 = ledger_engine.create_derived_lot(derived_command(l0.id, SeedLevel.G1, 400.0), ledger_context)
    certify(l1.id)
    l2 = ledger_engine.create_derived_lot(derived_command(l1.id, SeedLevel.G2, 150.0, custodian_id=30), ledger_context)
    return {"L0": l0.id, "L1": l1.id, "L2": l2.id}
