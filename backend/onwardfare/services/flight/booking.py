"""
Hold reservation builder - no-payment Duffel orders.
"""
from typing import Any, Dict, Optional, Tuple
import logging

from onwardfare.models.flight_models import (
    HoldReceipt,
    HoldRequest,
    PassengerDefaults,
    PassengerDetails,
)
from onwardfare.services.flight.mappers.mapper import first_passenger_id
from onwardfare.services.integration.common.errors import (
    InputValidationError,
    MissingPassengerError,
)
from onwardfare.services.integration.duffel.client import DuffelClient

logger = logging.getLogger("OnwardFare-Hold")


def split_full_name(name: Optional[str], defaults: PassengerDefaults = PassengerDefaults()) -> Tuple[str, str]:
    """
    "Jane Doe"        → ("Jane", "Doe")
    "Mary Ann  Smith" → ("Mary", "Ann Smith")
    "Madonna"         → ("Madonna", defaults.family_name)
    "" / None         → (defaults.given_name, defaults.family_name)
    """
    parts = (name or "").split()
    if not parts:
        return defaults.given_name, defaults.family_name
    given = parts[0]
    family = " ".join(parts[1:]) or defaults.family_name
    return given, family


def build_passenger(
    passenger_id: str,
    details: PassengerDetails,
    defaults: PassengerDefaults = PassengerDefaults(),
) -> Dict[str, Any]:
    """Duffel order passenger; every field the caller left out comes from `defaults`."""
    given_name, family_name = split_full_name(details.name, defaults)
    return {
        "id": passenger_id,
        "given_name": given_name,
        "family_name": family_name,
        "title": details.title or defaults.title,
        "gender": details.gender or defaults.gender,
        "email": details.email or defaults.email,
        "phone_number": details.phone_number or defaults.phone_number,
        "born_on": details.born_on or defaults.born_on,
    }


class HoldReservationBuilder:
    def __init__(self, client: DuffelClient, defaults: PassengerDefaults = PassengerDefaults()):
        self.client = client
        self.defaults = defaults

    async def resolve_passenger_id(self, request: HoldRequest) -> str:
        """Caller-supplied id, else the first passenger stub on the fetched offer."""
        if request.passenger_id:
            return request.passenger_id

        offer = await self.client.get_offer(request.offer_id)
        passenger_id = first_passenger_id(offer)
        if not passenger_id:
            raise MissingPassengerError(request.offer_id)
        return passenger_id

    async def place_hold(self, request: HoldRequest) -> HoldReceipt:
        """
        Create a hold order for request.offer_id.

        Provider rejections (expired offer, missing field, ...) propagate as
        ProviderError with Duffel's own payload.
        """
        if not request.offer_id or not request.offer_id.strip():
            raise InputValidationError("Missing offer_id")

        passenger_id = await self.resolve_passenger_id(request)
        passenger = build_passenger(passenger_id, request.passenger, self.defaults)

        logger.info(f"📌 Placing hold | offer={request.offer_id} | passenger={passenger_id}")
        receipt = await self.client.create_order(
            request.offer_id,
            [passenger],
            include_payment=False,
        )
        logger.info(
            f"✅ Hold placed | order={receipt.order_id} | ref={receipt.booking_reference} | "
            f"pay by {receipt.payment_required_by}"
        )
        return receipt
