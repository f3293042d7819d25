import sys
from pathlib import Path
from datetime import date, timedelta
import pytest

# 1. Force the backend directory into sys.path
BACKEND_DIR = Path(__file__).resolve().parents[1] / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

# 2. Mock environment variables for testing
import os
os.environ["DUFFEL_API_KEY"] = "duffel_test_key"
os.environ["DUFFEL_BASE_URL"] = "https://duffel.test"
os.environ["DESTINATION_POOL"] = "PNH,KUL"
os.environ.pop("ALLOWED_ORIGINS", None)
os.environ.pop("PRICE_CEILING_AMOUNT", None)

from onwardfare.models.flight_models import HoldReceipt, OfferRequestResult
from onwardfare.services.integration.common.errors import ProviderError


def make_offer(offer_id, amount, currency="USD", passenger_id="pas_1", instant=True):
    """Minimal Duffel offer dict."""
    offer = {
        "id": offer_id,
        "total_amount": amount,
        "total_currency": currency,
        "passengers": [{"id": passenger_id, "type": "adult"}] if passenger_id else [],
        "payment_requirements": {
            "requires_instant_payment": instant,
            "payment_required_by": None if instant else "2030-01-01T12:00:00Z",
        },
    }
    return offer


class FakeDuffel:
    """
    Stands in for DuffelClient in service tests.

    `routes` maps destination → list of offers, or a ProviderError to raise at
    create time. Destinations in `listed` are answered with a request id and
    served by list_offers instead of inline; `list_errors` fails that call.
    """

    def __init__(self, routes=None, listed=(), list_errors=None, offers_by_id=None):
        self.routes = routes or {}
        self.listed = set(listed)
        self.list_errors = list_errors or {}
        self.offers_by_id = offers_by_id or {}
        self.created = []
        self.listed_calls = []
        self.orders = []
        self.configured = True

    async def create_offer_request(self, origin, destination, departure_date, cabin_class="economy"):
        self.created.append(destination)
        result = self.routes.get(destination, [])
        if isinstance(result, ProviderError):
            raise result
        if destination in self.listed:
            return OfferRequestResult(offer_request_id=f"orq_{destination}")
        return OfferRequestResult(offer_request_id=f"orq_{destination}", offers=list(result))

    async def list_offers(self, offer_request_id):
        self.listed_calls.append(offer_request_id)
        destination = offer_request_id.split("_", 1)[1]
        if destination in self.list_errors:
            raise self.list_errors[destination]
        return list(self.routes.get(destination, []))

    async def get_offer(self, offer_id):
        if offer_id not in self.offers_by_id:
            raise ProviderError(404, {"errors": [{"code": "not_found", "title": "Not found"}]}, "get_offer")
        return self.offers_by_id[offer_id]

    async def create_order(self, selected_offer_id, passengers, include_payment=False, amount=None, currency=None):
        self.orders.append({
            "offer_id": selected_offer_id,
            "passengers": passengers,
            "include_payment": include_payment,
        })
        return HoldReceipt(
            order_id="ord_1",
            booking_reference="ABC123",
            total_amount="45.00",
            total_currency="USD",
            payment_required_by="2030-01-01T12:00:00Z",
        )


@pytest.fixture
def offer_factory():
    return make_offer


@pytest.fixture
def fake_duffel_cls():
    return FakeDuffel


@pytest.fixture
def travel_date():
    return date.today() + timedelta(days=30)
