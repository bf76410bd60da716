"""
The rate provider is never called while this process holds the database
write lock.

A provider that tries to take SQLite's write lock from a second connection,
with no busy wait, records whether the lock was free at fetch time.
"""

import sqlite3
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from quote_kernel.models.customer import CustomerModel
from quote_kernel.services.currency_converter import CurrencyConverter, StaticRateProvider
from quote_kernel.services.quotation_service import QuotationLifecycle
from tests.conftest import SALES, SEED_ACTOR_ID, TEST_RATES, seed_catalog, widget_request

pytestmark = pytest.mark.concurrency


class WriteLockRecordingProvider(StaticRateProvider):
    def __init__(self, db_path: str):
        super().__init__("AED", TEST_RATES)
        self.db_path = db_path
        self.observed: list[str] = []

    def fetch_rate(self, base: str, target: str) -> Decimal:
        conn = sqlite3.connect(self.db_path, timeout=0)
        conn.isolation_level = None
        try:
            conn.execute("BEGIN IMMEDIATE")
            conn.execute("ROLLBACK")
            self.observed.append("free")
        except sqlite3.OperationalError as e:
            self.observed.append(str(e))
        finally:
            conn.close()
        return super().fetch_rate(base, target)


@pytest.fixture
def provider(db_engine):
    if db_engine.dialect.name != "sqlite":
        pytest.skip("write-lock check is SQLite specific")
    return WriteLockRecordingProvider(db_engine.url.database)


@pytest.fixture
def seeded(session_factory):
    s = session_factory()
    catalog = seed_catalog(s)
    s.commit()
    s.close()
    return catalog


@pytest.fixture
def recording_converter(provider, clock):
    conv = CurrencyConverter(
        provider, "AED", clock=clock, ttl_seconds=300, fetch_timeout_seconds=5.0
    )
    yield conv
    conv.close()


@pytest.fixture
def make_lifecycle(recording_converter, gate, clock, config):
    def _make(session) -> QuotationLifecycle:
        return QuotationLifecycle(session, recording_converter, gate, clock, config)

    return _make


def test_create_fetches_rates_with_lock_free(session_factory, make_lifecycle, provider, seeded):
    s = session_factory()
    view = make_lifecycle(s).create(SALES, widget_request(seeded, currency="USD"))
    s.commit()

    assert provider.observed == ["free"]
    assert view.locked_rates == {"AED": Decimal("1"), "USD": Decimal("0.25")}


def test_duplicate_fetches_rates_with_lock_free(
    session_factory, make_lifecycle, recording_converter, provider, seeded
):
    s = session_factory()
    lifecycle = make_lifecycle(s)
    source = lifecycle.create(SALES, widget_request(seeded, currency="USD"))
    s.commit()
    recording_converter.clear_cache()

    copy = lifecycle.duplicate(SALES, source.id)
    s.commit()

    assert provider.observed == ["free", "free"]
    assert copy.quotation_number != source.quotation_number


def test_callers_open_transaction_is_kept(session_factory, make_lifecycle, seeded):
    s = session_factory()
    s.add(CustomerModel(customer_ref="CUST-NEW", name="New Co", created_by_id=SEED_ACTOR_ID))
    s.flush()

    make_lifecycle(s).create(SALES, widget_request(seeded, customer_ref="CUST-NEW"))
    s.commit()

    check = session_factory()
    count = check.execute(
        select(func.count()).select_from(CustomerModel).where(CustomerModel.customer_ref == "CUST-NEW")
    ).scalar_one()
    assert count == 1
