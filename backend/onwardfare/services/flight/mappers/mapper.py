"""
Helpers that read raw Duffel offers and orders.

Raw offers stay dicts end to end; these functions are the only place that knows
the Duffel field names.
"""
import math
from typing import Any, Dict, Optional

from onwardfare.models.flight_models import HoldReceipt


def offer_price(raw_offer: Dict[str, Any]) -> Optional[float]:
    """total_amount as a float, or None if it is missing or not numeric."""
    amount = raw_offer.get("total_amount")
    if amount is None:
        return None
    try:
        price = float(amount)
    except (TypeError, ValueError):
        return None
    return price if math.isfinite(price) else None


def offer_currency(raw_offer: Dict[str, Any]) -> Optional[str]:
    currency = raw_offer.get("total_currency")
    return currency.upper() if isinstance(currency, str) else None


def first_passenger_id(raw_offer: Dict[str, Any]) -> Optional[str]:
    passengers = raw_offer.get("passengers")
    if not isinstance(passengers, list) or not passengers:
        return None
    first = passengers[0]
    if not isinstance(first, dict):
        return None
    return first.get("id") or None


def _payment_requirements(raw_offer: Dict[str, Any]) -> Dict[str, Any]:
    requirements = raw_offer.get("payment_requirements")
    return requirements if isinstance(requirements, dict) else {}


def is_hold_eligible(raw_offer: Dict[str, Any]) -> bool:
    """Only an explicit requires_instant_payment=false counts as holdable."""
    return _payment_requirements(raw_offer).get("requires_instant_payment") is False


def payment_required_by(raw_offer: Dict[str, Any]) -> Optional[str]:
    return _payment_requirements(raw_offer).get("payment_required_by")


def map_order_response(order: Dict[str, Any]) -> HoldReceipt:
    """Duffel order → HoldReceipt. Omitted fields stay None."""

    # v2 nests the deadline under payment_status
    payment_status = order.get("payment_status")
    deadline = None
    if isinstance(payment_status, dict):
        deadline = payment_status.get("payment_required_by")
    if deadline is None:
        deadline = order.get("payment_required_by")

    return HoldReceipt(
        order_id=order.get("id"),
        booking_reference=order.get("booking_reference"),
        total_amount=order.get("total_amount"),
        total_currency=order.get("total_currency"),
        payment_required_by=deadline,
    )
