"""
OnwardFare - Configuration

All settings are resolved once from the environment (and an optional .env file)
and treated as immutable for the process lifetime.
"""

import os
from functools import lru_cache
from typing import Any, Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator

from onwardfare.models.flight_models import (
    CABIN_CLASSES,
    PassengerDefaults,
    PriceCeiling,
    SearchPolicy,
)

load_dotenv()

DEFAULT_DESTINATION_POOL = "PNH,KUL,SGN,HAN,SIN"


def _split_codes(raw: Optional[str]) -> Tuple[str, ...]:
    """'bkk, dmk,,' -> ('BKK', 'DMK')"""
    if not raw:
        return ()
    return tuple(code.strip().upper() for code in raw.split(",") if code.strip())


def _as_bool(raw: Optional[str], default: bool) -> bool:
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Duffel
    duffel_api_key: str = ""
    duffel_base_url: str = "https://api.duffel.com"
    duffel_version: str = "v2"
    duffel_timeout_seconds: float = 30.0
    duffel_return_offers: bool = True

    # Search policy
    allowed_origins: Tuple[str, ...] = ()
    destination_pool: Tuple[str, ...] = _split_codes(DEFAULT_DESTINATION_POOL)
    price_ceiling_amount: Optional[float] = None
    price_ceiling_currency: str = "USD"
    prefer_hold_eligible: bool = True
    search_fanout_limit: int = 4
    cabin_class: str = "economy"

    # Hold
    default_passenger: PassengerDefaults = PassengerDefaults()

    # Server
    log_level: str = "INFO"
    port: int = 3000

    @field_validator("allowed_origins", "destination_pool", mode="before")
    @classmethod
    def _upper_codes(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return tuple(v.strip().upper() if isinstance(v, str) else v for v in value)
        return value

    @field_validator("allowed_origins", "destination_pool")
    @classmethod
    def _check_codes(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        bad = [code for code in value if len(code) != 3 or not code.isalpha()]
        if bad:
            raise ValueError(f"invalid IATA codes: {bad}")
        return value

    @field_validator("price_ceiling_currency", mode="before")
    @classmethod
    def _check_currency(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().upper()
            if len(value) != 3 or not value.isalpha():
                raise ValueError(f"price ceiling currency must be a 3-letter code, got {value!r}")
        return value

    @field_validator("cabin_class", mode="before")
    @classmethod
    def _check_cabin_class(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            if value not in CABIN_CLASSES:
                raise ValueError(f"cabin class must be one of {', '.join(CABIN_CLASSES)}, got {value!r}")
        return value

    @classmethod
    def from_env(cls) -> "Settings":
        ceiling = os.getenv("PRICE_CEILING_AMOUNT")
        return cls(
            duffel_api_key=os.getenv("DUFFEL_API_KEY", ""),
            duffel_base_url=os.getenv("DUFFEL_BASE_URL", "https://api.duffel.com").rstrip("/"),
            duffel_version=os.getenv("DUFFEL_VERSION", "v2"),
            duffel_timeout_seconds=float(os.getenv("DUFFEL_TIMEOUT_SECONDS", "30")),
            duffel_return_offers=_as_bool(os.getenv("DUFFEL_RETURN_OFFERS"), True),
            allowed_origins=_split_codes(os.getenv("ALLOWED_ORIGINS")),
            destination_pool=_split_codes(os.getenv("DESTINATION_POOL", DEFAULT_DESTINATION_POOL)),
            price_ceiling_amount=float(ceiling) if ceiling and ceiling.strip() else None,
            price_ceiling_currency=os.getenv("PRICE_CEILING_CURRENCY", "USD").strip().upper(),
            prefer_hold_eligible=_as_bool(os.getenv("PREFER_HOLD_ELIGIBLE"), True),
            search_fanout_limit=max(1, int(os.getenv("SEARCH_FANOUT_LIMIT", "4"))),
            cabin_class=os.getenv("CABIN_CLASS", "economy").strip().lower(),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            port=int(os.getenv("PORT", "3000")),
        )

    def policy(self) -> SearchPolicy:
        """Search policy derived from the configured allow-list and ceiling."""
        ceiling = None
        if self.price_ceiling_amount is not None:
            ceiling = PriceCeiling(
                amount=self.price_ceiling_amount,
                currency=self.price_ceiling_currency,
            )
        return SearchPolicy(
            allowed_origins=frozenset(self.allowed_origins),
            price_ceiling=ceiling,
            prefer_hold_eligible=self.prefer_hold_eligible,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
