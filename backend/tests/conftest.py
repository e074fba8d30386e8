"""
Pytest fixtures for bizledger backend tests.

Provides test database setup, two-tenant fixtures, fact builders, a fake
accounting platform on httpx.MockTransport, and the test client.

The database is a temporary SQLite file, not :memory:, because the
aggregator fetches facts on worker threads that each open their own
connection.
"""

from datetime import datetime
from decimal import Decimal

import httpx
import pytest

from bizledger import create_app
from bizledger.extensions import db
from bizledger.integrations.accounting_platform import AccountingPlatformClient, PlatformConfig
from bizledger.models import SaleFact, SaleFactLine, TenantProfile
from bizledger.services import tax_service
from bizledger.services.identity_service import Principal
from bizledger.services.sync_service import SyncBridge

TENANT_A = "tenant-a"
TENANT_B = "tenant-b"


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    db_path = tmp_path_factory.mktemp("db") / "bizledger-test.sqlite3"
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{db_path}",
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ALLOW_DEMO_FALLBACK': True,
        'QUICKFILE_API_KEY': None,
        'QUICKFILE_ACCOUNT_ID': None,
        'AKAUNTING_URL': None,
        'AKAUNTING_API_KEY': None,
        'AKAUNTING_COMPANY_ID': None,
        'LOG_LEVEL': 'WARNING',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def principal_a(db_session):
    """Principal for tenant A (first tenant)."""
    return Principal(tenant_id=TENANT_A, email="owner@tenant-a.test")


@pytest.fixture(scope='function')
def principal_b(db_session):
    """Principal for tenant B (second tenant)."""
    return Principal(tenant_id=TENANT_B, email="owner@tenant-b.test")


@pytest.fixture(scope='function')
def profile_a(db_session):
    profile = TenantProfile(tenant_id=TENANT_A, email="owner@tenant-a.test", business_name="Acme Grocers")
    db_session.add(profile)
    db_session.commit()
    return profile


@pytest.fixture(scope='function')
def make_sale(db_session):
    """
    Insert a POS sale directly (the engine itself never writes sales).

    lines: iterable of (product_name, quantity, unit_price_minor); when
    omitted the sale gets a single line worth total_minor.
    """
    counter = {"n": 0}

    def _make(tenant_id, total_minor=None, occurred_at=None, lines=None, receipt_number=None):
        counter["n"] += 1
        if lines is None:
            lines = [("Counter sale", "1", total_minor)]
        sale_lines = [
            SaleFactLine(
                product_name=name,
                quantity=Decimal(str(qty)),
                unit_price_minor=price,
                line_total_minor=tax_service.compute_line_total(qty, price),
            )
            for name, qty, price in lines
        ]
        sale = SaleFact(
            tenant_id=tenant_id,
            receipt_number=receipt_number or f"R-{counter['n']:05d}",
            total_minor=total_minor if total_minor is not None else sum(line.line_total_minor for line in sale_lines),
            currency_code="UGX",
            occurred_at=occurred_at or datetime(2026, 3, 10, 12, 0),
        )
        sale.lines = sale_lines
        db_session.add(sale)
        db_session.commit()
        return sale

    return _make


class FakePlatform:
    """
    In-process stand-in for an accounting platform.

    Records every request and answers with {"data": {"id": ...}} like the
    real APIs. Flip `mode` to "error" or "timeout" to simulate failures.
    """

    def __init__(self, name="quickfile"):
        self.name = name
        self.requests = []
        self.mode = "ok"
        self._next_id = 1000

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.mode == "timeout":
            raise httpx.ConnectTimeout("simulated timeout", request=request)
        if self.mode == "error":
            return httpx.Response(500, json={"message": "platform exploded"})

        if request.method == "PUT":
            external_id = request.url.path.rsplit("/", 1)[-1]
            return httpx.Response(200, json={"data": {"id": external_id}})

        self._next_id += 1
        return httpx.Response(201, json={"data": {"id": str(self._next_id)}})

    def client(self) -> AccountingPlatformClient:
        config = PlatformConfig(
            name=self.name,
            base_url=f"https://{self.name}.example.test",
            api_key="test-key",
            account_header="X-Account-ID" if self.name == "quickfile" else "X-Company",
            account_id="42",
            timeout_seconds=1.0,
        )
        return AccountingPlatformClient(config, transport=httpx.MockTransport(self.handler))

    def calls(self, method=None):
        return [r for r in self.requests if method is None or r.method == method]


@pytest.fixture(scope='function')
def fake_platform():
    return FakePlatform("quickfile")


@pytest.fixture(scope='function')
def bridge(fake_platform):
    bridge = SyncBridge([fake_platform.client()])
    yield bridge
    bridge.close()


def tenant_headers(tenant_id: str, email: str = "owner@example.test") -> dict:
    return {"X-Tenant-Id": tenant_id, "X-User-Email": email}


@pytest.fixture(scope='function')
def akaunting_platform():
    return FakePlatform("akaunting")
