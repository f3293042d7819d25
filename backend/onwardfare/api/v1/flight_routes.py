"""
OnwardFare API - Flight Routes
Duffel-backed quote and hold

Endpoints:
    GET  /test-provider  - Duffel connectivity probe
    POST /quote          - Cheapest eligible onward flight
    POST /hold           - No-payment hold on an offer
"""

from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from onwardfare.config import Settings, get_settings
from onwardfare.models.flight_models import HoldRequest, PassengerDetails, SearchRequest
from onwardfare.services.flight.booking import HoldReservationBuilder
from onwardfare.services.flight.search import FareSearchAggregator
from onwardfare.services.integration.common.errors import (
    InputValidationError,
    MissingPassengerError,
    NoEligibleOffersError,
    ProviderConfigurationError,
    ProviderError,
)
from onwardfare.services.integration.duffel.client import DuffelClient

router = APIRouter(tags=["Flights"])
logger = logging.getLogger("OnwardFare-Flights")


# --------------------------------------------------
# REQUEST BODIES
# --------------------------------------------------
class QuoteBody(BaseModel):
    name: Optional[str] = None
    origin: Optional[str] = None
    date: Optional[str] = None
    destinations: Optional[List[str]] = None


class HoldBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    offer_id: Optional[str] = Field(default=None, alias="offerId")
    passenger_id: Optional[str] = Field(default=None, alias="passengerId")
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    born_on: Optional[str] = Field(default=None, alias="bornOn")
    title: Optional[str] = None
    gender: Optional[str] = None


# --------------------------------------------------
# DEPENDENCIES
# --------------------------------------------------
def get_duffel_client(request: Request) -> DuffelClient:
    client = getattr(request.app.state, "duffel", None)
    if client is None:
        client = DuffelClient.from_settings(get_settings())
        request.app.state.duffel = client
    return client


def get_aggregator(
    client: DuffelClient = Depends(get_duffel_client),
    settings: Settings = Depends(get_settings),
) -> FareSearchAggregator:
    return FareSearchAggregator(
        client,
        settings.policy(),
        fanout_limit=settings.search_fanout_limit,
        cabin_class=settings.cabin_class,
    )


def get_hold_builder(
    client: DuffelClient = Depends(get_duffel_client),
    settings: Settings = Depends(get_settings),
) -> HoldReservationBuilder:
    return HoldReservationBuilder(client, settings.default_passenger)


# --------------------------------------------------
# ERROR TRANSLATION
# --------------------------------------------------
def _error(status_code: int, error: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=jsonable_encoder({"error": error, **extra}))


def _validation_details(exc: ValidationError) -> list:
    return [
        {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]


def _provider_error(exc: ProviderError) -> JSONResponse:
    status_code = exc.status_code if exc.status_code and exc.status_code >= 400 else 502
    return _error(status_code, "Duffel request failed", **exc.to_dict())


# --------------------------------------------------
# CONNECTIVITY
# --------------------------------------------------
@router.get("/test-provider")
async def test_provider(client: DuffelClient = Depends(get_duffel_client)):
    """
    Lists a handful of airlines to prove the key and base URL work
    """
    if not client.configured:
        return _error(500, "DUFFEL_API_KEY missing")

    try:
        response = await client.list_airlines(limit=5)
    except ProviderError as e:
        return _provider_error(e)

    try:
        content = response.json()
    except ValueError:
        content = {"raw": response.text}
    return JSONResponse(status_code=response.status_code, content=content)


# --------------------------------------------------
# QUOTE
# --------------------------------------------------
@router.post("/quote")
async def quote(
    body: QuoteBody,
    aggregator: FareSearchAggregator = Depends(get_aggregator),
    settings: Settings = Depends(get_settings),
):
    """
    Cheapest eligible onward flight from `origin` on `date`
    """
    name = (body.name or "").strip()
    origin = (body.origin or "").strip()
    departure = (body.date or "").strip()
    if not name or not origin or not departure:
        return _error(400, "Missing name, origin, or date")

    if not aggregator.client.configured:
        return _error(500, "DUFFEL_API_KEY missing")

    try:
        search_request = SearchRequest(
            traveler_name=name,
            origin=origin,
            departure_date=departure,
            destination_pool=body.destinations if body.destinations else list(settings.destination_pool),
        )
    except ValidationError as e:
        return _error(400, "Invalid search input", details=_validation_details(e))

    try:
        best = await aggregator.search(search_request)
    except NoEligibleOffersError as e:
        return _error(404, "No eligible offers", reason=e.reason, diagnostics=e.diagnostics)
    except ProviderConfigurationError:
        return _error(500, "DUFFEL_API_KEY missing")

    return jsonable_encoder({"success": True, **best.model_dump()})


# --------------------------------------------------
# HOLD
# --------------------------------------------------
@router.post("/hold")
async def hold(
    body: HoldBody,
    builder: HoldReservationBuilder = Depends(get_hold_builder),
):
    """
    Reserve an offer without paying; Duffel sets the payment deadline
    """
    if not body.offer_id or not body.offer_id.strip():
        return _error(400, "Missing offer_id")

    if not builder.client.configured:
        return _error(500, "DUFFEL_API_KEY missing")

    hold_request = HoldRequest(
        offer_id=body.offer_id.strip(),
        passenger_id=(body.passenger_id or "").strip() or None,
        passenger=PassengerDetails(
            name=body.name,
            email=body.email,
            phone_number=body.phone,
            born_on=body.born_on,
            title=body.title,
            gender=body.gender,
        ),
    )

    try:
        receipt = await builder.place_hold(hold_request)
    except MissingPassengerError as e:
        return _error(
            422,
            "Missing passenger",
            offer_id=e.offer_id,
            hint="Pass passenger_id from the quote, or search again for a fresh offer.",
        )
    except InputValidationError as e:
        return _error(400, str(e))
    except ProviderConfigurationError:
        return _error(500, "DUFFEL_API_KEY missing")
    except ProviderError as e:
        logger.warning(f"Hold on {body.offer_id} rejected by Duffel: {e.status_code}")
        return _provider_error(e)

    return jsonable_encoder({"success": True, **receipt.model_dump()})
