"""
Shared test fixtures for the MarketSync test suite.
"""

import uuid

import pytest

from marketsync.core.models import (
    ListingContext,
    ListingFormat,
    PolicyOptions,
    Product,
    TenantSettings,
)
from marketsync.services.audit import AlertEmitter, AuditLogger
from marketsync.services.token_manager import TokenManager
from tests.fakes import (
    FakeEbayAuth,
    FakeEbayClient,
    FixedClock,
    InMemoryCatalog,
    InMemoryCredentialStore,
    RecordingAlertSink,
    RecordingAuditSink,
    StaticTenantSettings,
    make_credential,
)


@pytest.fixture
def tenant_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def sample_watch(tenant_id) -> Product:
    """A single-unit fixed-price watch, never listed."""
    return Product(
        id="SKU-ROLEX-1",
        tenant_id=tenant_id,
        title="Rolex Submariner Date 41mm Steel Black Dial",
        description="Full set, serviced 2024.",
        brand="Rolex",
        model="Submariner Date",
        reference_number="126610LN",
        year="2021",
        gender="mens",
        category_code="watch",
        condition="very_good",
        quantity=1,
        price=12950.0,
        attributes={
            "movement_type": "Automatic",
            "case_material": "Stainless Steel",
            "case_size": "41mm",
            "dial_color": "Black",
        },
        photos=[
            {"full": "https://cdn.example.com/rolex/1.jpg"},
            "https://cdn.example.com/rolex/2.jpg",
        ],
    )


@pytest.fixture
def sample_stock_item(tenant_id) -> Product:
    """A multi-unit fixed-price handbag, never listed."""
    return Product(
        id="SKU-BAG-5",
        tenant_id=tenant_id,
        title="Leather Tote Bag Cognac",
        brand="Coach",
        gender="womens",
        category_code="handbag",
        condition="new",
        quantity=5,
        price=295.0,
        attributes={"exterior_color": "Brown", "exterior_material": "Leather"},
    )


@pytest.fixture
def sample_auction(tenant_id) -> Product:
    """An auction without buy-it-now."""
    return Product(
        id="SKU-OMEGA-AUC",
        tenant_id=tenant_id,
        title="Omega Speedmaster Professional",
        brand="Omega",
        category_code="watch",
        condition="good",
        listing_format=ListingFormat.AUCTION,
        auction_start_price=2500.0,
        auction_reserve_price=4000.0,
    )


@pytest.fixture
def listing_context() -> ListingContext:
    client = FakeEbayClient()
    return ListingContext(
        policies=PolicyOptions(
            fulfillment=client.fulfillment_policies,
            payment=client.payment_policies,
            returns=client.return_policies,
            location_keys=client.locations,
        ),
        settings=TenantSettings(listing_footer="Authenticity guaranteed."),
    )


# ─── Collaborators ───────────────────────────────────────────


@pytest.fixture
def catalog() -> InMemoryCatalog:
    return InMemoryCatalog()


@pytest.fixture
def credentials(tenant_id, clock) -> InMemoryCredentialStore:
    """A store holding one valid credential for ``tenant_id``."""
    return InMemoryCredentialStore([make_credential(tenant_id, clock())])


@pytest.fixture
def ebay_auth() -> FakeEbayAuth:
    return FakeEbayAuth()


@pytest.fixture
def ebay_client() -> FakeEbayClient:
    return FakeEbayClient()


@pytest.fixture
def token_manager(credentials, ebay_auth, clock) -> TokenManager:
    return TokenManager(store=credentials, auth=ebay_auth, clock=clock)


@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def alert_sink() -> RecordingAlertSink:
    return RecordingAlertSink()


@pytest.fixture
def audit(audit_sink) -> AuditLogger:
    return AuditLogger(audit_sink)


@pytest.fixture
def alerts(alert_sink) -> AlertEmitter:
    return AlertEmitter(alert_sink)


@pytest.fixture
def tenant_settings() -> StaticTenantSettings:
    return StaticTenantSettings(TenantSettings(listing_footer="Authenticity guaranteed."))
