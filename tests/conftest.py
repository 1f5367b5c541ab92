"""Shared fixtures: an in-memory store and a caller, no network."""

import pytest
from uuid import uuid4

from splitledger.audit import AuditLogger
from splitledger.config import get_settings
from splitledger.services.identity import CallerIdentity
from splitledger.services.storage import InMemoryAuditStorage, InMemoryLedgerStore


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    """Keep host environment and cached settings out of the tests."""
    for name in (
        "LEDGER_DEFAULT_CURRENCY",
        "LEDGER_ROUNDING_TOLERANCE",
        "LEDGER_DEFAULT_RELATIONSHIP_TYPE",
        "LEDGER_DEFAULT_SETTLEMENT_METHOD",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def caller():
    return CallerIdentity(user_id=uuid4(), email="asha@example.com")


@pytest.fixture
def store():
    return InMemoryLedgerStore()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)
