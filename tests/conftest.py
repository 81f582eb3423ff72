"""Shared fixtures: a small category set and an engine backed by in-memory stores."""

import pytest

from fluxplan.audit import AuditLogger
from fluxplan.config import AppSettings, EngineSettings
from fluxplan.models.finance import Category, CategoryRole, EntryKind
from fluxplan.orchestrator import PlanningEngine, StoreBundle
from fluxplan.planning.generators import GeneratorConfig
from fluxplan.services.storage import InMemoryAuditStorage, InMemoryRecordStore


@pytest.fixture
def categories() -> list[Category]:
    return [
        Category(id="cat_salary", name="Salary", kind=EntryKind.INCOME, tithe_eligible=True),
        Category(id="cat_gift", name="Gift", kind=EntryKind.INCOME),
        Category(id="cat_rent", name="Rent", kind=EntryKind.EXPENSE),
        Category(id="cat_food", name="Food", kind=EntryKind.EXPENSE),
        Category(id="cat_tithe", name="Tithe", kind=EntryKind.EXPENSE, role=CategoryRole.TITHE),
        Category(
            id="cat_invoice",
            name="Card Invoice",
            kind=EntryKind.EXPENSE,
            role=CategoryRole.CARD_INVOICE,
        ),
    ]


@pytest.fixture
def generator_config() -> GeneratorConfig:
    return GeneratorConfig(
        tithe_category_id="cat_tithe",
        invoice_category_id="cat_invoice",
    )


@pytest.fixture
def engine_settings() -> EngineSettings:
    return EngineSettings()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def stores(categories) -> StoreBundle:
    bundle = StoreBundle.in_memory()
    bundle.categories = InMemoryRecordStore(categories)
    return bundle


@pytest.fixture
def engine(stores, audit_storage, engine_settings) -> PlanningEngine:
    """Engine over in-memory stores; tests call `await engine.load()` themselves."""
    return PlanningEngine(
        stores,
        audit_logger=AuditLogger(audit_storage),
        settings=engine_settings,
        app_settings=AppSettings(calculate_tithing=True),
    )
