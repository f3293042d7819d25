# backend/onwardfare/models/flight_models.py
from datetime import date
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

IATA_PATTERN = r"^[A-Z]{3}$"
CABIN_CLASSES = ("economy", "premium_economy", "business", "first")


# ═══════════════════════════════════════════════════════════════════
# SEARCH
# ═══════════════════════════════════════════════════════════════════

class SearchRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    traveler_name: str = Field(..., min_length=1)
    origin: str = Field(..., pattern=IATA_PATTERN)
    departure_date: date
    destination_pool: List[str] = Field(default_factory=list)

    @field_validator("traveler_name", mode="before")
    @classmethod
    def _strip_name(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("origin", mode="before")
    @classmethod
    def _upper_origin(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("destination_pool", mode="before")
    @classmethod
    def _upper_pool(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return [v.strip().upper() if isinstance(v, str) else v for v in value]
        return value

    @field_validator("destination_pool")
    @classmethod
    def _check_pool_codes(cls, value: List[str]) -> List[str]:
        bad = [code for code in value if len(code) != 3 or not code.isalpha()]
        if bad:
            raise ValueError(f"invalid IATA codes in destination pool: {bad}")
        return value

    @field_validator("departure_date")
    @classmethod
    def _not_in_past(cls, value: date) -> date:
        if value < date.today():
            raise ValueError("departure date must not be in the past")
        return value


class PriceCeiling(BaseModel):
    model_config = ConfigDict(frozen=True)

    amount: float
    currency: str = Field(..., min_length=3, max_length=3)


class SearchPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    allowed_origins: FrozenSet[str] = frozenset()
    price_ceiling: Optional[PriceCeiling] = None
    prefer_hold_eligible: bool = False


class OfferRequestResult(BaseModel):
    """Either the offers were inlined in the offer request, or they must be listed by id."""
    offer_request_id: Optional[str] = None
    offers: Optional[List[Dict[str, Any]]] = None

    @property
    def inline(self) -> bool:
        return self.offers is not None


class EligibleOffer(BaseModel):
    destination: str
    position: int            # index in the searched destination pool
    offer: Dict[str, Any]
    price: float             # comparison only, never serialized back


class SearchDiagnostic(BaseModel):
    destination: str
    stage: str               # create_offer_request / list_offers
    status_code: Optional[int] = None
    error: Any = None


class BestQuote(BaseModel):
    traveler_name: str
    origin: str
    destination: str
    departure_date: date
    offer_id: str
    passenger_id: Optional[str] = None
    price: str               # provider's total_amount, verbatim
    currency: Optional[str] = None
    hold_eligible: bool
    payment_required_by: Optional[str] = None


# ═══════════════════════════════════════════════════════════════════
# HOLD
# ═══════════════════════════════════════════════════════════════════

class PassengerDefaults(BaseModel):
    """Values used for any passenger field the caller leaves out."""
    model_config = ConfigDict(frozen=True)

    given_name: str = "Guest"
    family_name: str = "Traveler"
    title: str = "mr"
    gender: str = "m"
    email: str = "guest@example.com"
    phone_number: str = "+14155550100"
    born_on: str = "1990-01-01"


class PassengerDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    born_on: Optional[str] = None
    title: Optional[str] = None
    gender: Optional[str] = None


class HoldRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    offer_id: str = Field(..., min_length=1)
    passenger_id: Optional[str] = None
    passenger: PassengerDetails = PassengerDetails()


class HoldReceipt(BaseModel):
    order_id: Optional[str] = None
    booking_reference: Optional[str] = None
    total_amount: Optional[str] = None
    total_currency: Optional[str] = None
    payment_required_by: Optional[str] = None
