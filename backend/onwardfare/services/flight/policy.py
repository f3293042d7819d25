"""
Search policy: origin allow-list and the single-currency price ceiling.
"""
from typing import Any, Dict
import logging

from onwardfare.models.flight_models import SearchPolicy
from onwardfare.services.flight.mappers.mapper import offer_currency, offer_price

logger = logging.getLogger("OnwardFare-Policy")


def origin_allowed(origin: str, policy: SearchPolicy) -> bool:
    """An empty allow-list admits every origin."""
    if not policy.allowed_origins:
        return True
    allowed = {code.upper() for code in policy.allowed_origins}
    return origin.upper() in allowed


def within_price_ceiling(raw_offer: Dict[str, Any], policy: SearchPolicy) -> bool:
    """
    The ceiling only binds offers priced in its own currency; no conversion is
    attempted for anything else.
    """
    ceiling = policy.price_ceiling
    if ceiling is None:
        return True
    if offer_currency(raw_offer) != ceiling.currency.upper():
        return True
    price = offer_price(raw_offer)
    return price is not None and price <= ceiling.amount


def is_eligible(raw_offer: Dict[str, Any], policy: SearchPolicy) -> bool:
    """
    Per-offer eligibility. prefer_hold_eligible is a selection preference and
    never rejects anything here.
    """
    offer_id = raw_offer.get("id")
    if not isinstance(offer_id, str) or not offer_id:
        return False
    if offer_price(raw_offer) is None:
        logger.warning(f"Offer {raw_offer.get('id')} has unusable total_amount={raw_offer.get('total_amount')!r}")
        return False
    return within_price_ceiling(raw_offer, policy)
