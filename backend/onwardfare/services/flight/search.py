"""
Fare search aggregator - cheapest eligible onward offer over a destination pool.

One offer request per destination, run concurrently under a fan-out limit.
A provider failure for one destination is recorded as a diagnostic and never
aborts the others. Selection only happens once every destination has settled.
"""
from typing import Any, Dict, List, Optional
import asyncio
import logging

from pydantic import BaseModel

from onwardfare.core.metrics import record_destination_outcome, record_search_outcome
from onwardfare.models.flight_models import (
    BestQuote,
    EligibleOffer,
    SearchDiagnostic,
    SearchPolicy,
    SearchRequest,
)
from onwardfare.services.flight.mappers.mapper import (
    first_passenger_id,
    is_hold_eligible,
    offer_price,
    payment_required_by,
)
from onwardfare.services.flight.policy import is_eligible, origin_allowed
from onwardfare.services.integration.common.errors import (
    NoEligibleOffersError,
    OriginNotAllowedError,
    ProviderError,
)
from onwardfare.services.integration.duffel.client import DuffelClient

logger = logging.getLogger("OnwardFare-Search")

MAX_DIAGNOSTICS = 5


class DestinationOutcome(BaseModel):
    destination: str
    position: int
    candidate: Optional[EligibleOffer] = None
    diagnostic: Optional[SearchDiagnostic] = None
    offers_found: int = 0


def candidate_destinations(origin: str, pool: List[str]) -> List[str]:
    """Pool order, without the origin itself and without repeats."""
    seen = {origin.upper()}
    result = []
    for code in pool:
        code = code.upper()
        if code in seen:
            continue
        seen.add(code)
        result.append(code)
    return result


def cheapest(offers: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Lowest total_amount; min() keeps the first of equal prices."""
    if not offers:
        return None
    return min(offers, key=offer_price)


def select_best(candidates: List[EligibleOffer], prefer_hold_eligible: bool) -> Optional[EligibleOffer]:
    """
    Global minimum by price, ties going to the earlier pool position.
    With prefer_hold_eligible the holdable subset wins unless it is empty.
    """
    if not candidates:
        return None

    pool = candidates
    if prefer_hold_eligible:
        holdable = [c for c in candidates if is_hold_eligible(c.offer)]
        if holdable:
            pool = holdable

    return min(pool, key=lambda c: (c.price, c.position))


class FareSearchAggregator:
    """Fans a SearchRequest out over its destination pool and picks one quote."""

    def __init__(
        self,
        client: DuffelClient,
        policy: SearchPolicy,
        fanout_limit: int = 4,
        cabin_class: str = "economy",
    ):
        self.client = client
        self.policy = policy
        self.fanout_limit = max(1, fanout_limit)
        self.cabin_class = cabin_class

    async def search(self, request: SearchRequest) -> BestQuote:
        if not origin_allowed(request.origin, self.policy):
            logger.info(f"🚫 Origin {request.origin} not in allow-list")
            record_search_outcome("origin_not_allowed")
            raise OriginNotAllowedError(request.origin)

        destinations = candidate_destinations(request.origin, request.destination_pool)
        logger.info(
            f"✈️ Fare search | {request.origin} → {','.join(destinations) or '-'} | {request.departure_date}"
        )

        outcomes = await self._fan_out(request, destinations)

        candidates = [o.candidate for o in outcomes if o.candidate is not None]
        diagnostics = [o.diagnostic for o in outcomes if o.diagnostic is not None]

        best = select_best(candidates, self.policy.prefer_hold_eligible)
        if best is None:
            reason = "price_ceiling" if any(o.offers_found for o in outcomes) else "no_offers"
            logger.info(f"No eligible offers from {request.origin} ({reason}, {len(diagnostics)} errors)")
            record_search_outcome(reason)
            raise NoEligibleOffersError(diagnostics[:MAX_DIAGNOSTICS], reason=reason)

        record_search_outcome("quoted")
        logger.info(
            f"✅ Best quote {request.origin} → {best.destination} | "
            f"{best.offer.get('total_amount')} {best.offer.get('total_currency')} | offer={best.offer.get('id')}"
        )
        return self._to_quote(request, best)

    async def _fan_out(self, request: SearchRequest, destinations: List[str]) -> List[DestinationOutcome]:
        semaphore = asyncio.Semaphore(self.fanout_limit)

        async def bounded(position: int, destination: str) -> DestinationOutcome:
            async with semaphore:
                return await self._search_destination(request, position, destination)

        settled = await asyncio.gather(
            *(bounded(i, d) for i, d in enumerate(destinations)),
            return_exceptions=True,
        )

        # Only provider errors are absorbed (inside _search_destination); anything
        # else is a bug and is raised once every task has finished.
        for result in settled:
            if isinstance(result, BaseException):
                raise result
        return list(settled)

    async def _search_destination(self, request: SearchRequest, position: int, destination: str) -> DestinationOutcome:
        outcome = DestinationOutcome(destination=destination, position=position)

        try:
            created = await self.client.create_offer_request(
                request.origin, destination, request.departure_date, self.cabin_class
            )
        except ProviderError as e:
            return self._failed(outcome, "create_offer_request", e)

        offers = created.offers
        if not created.inline:
            if not created.offer_request_id:
                return self._failed(
                    outcome,
                    "create_offer_request",
                    ProviderError(None, {"message": "offer request id missing"}, "create_offer_request"),
                )
            try:
                offers = await self.client.list_offers(created.offer_request_id)
            except ProviderError as e:
                return self._failed(outcome, "list_offers", e)

        if not offers:
            record_destination_outcome("empty")
            return outcome

        outcome.offers_found = len(offers)
        eligible = [o for o in offers if is_eligible(o, self.policy)]
        best = cheapest(eligible)
        if best is None:
            logger.debug(f"{destination}: {len(offers)} offers, none within policy")
            record_destination_outcome("filtered")
            return outcome

        outcome.candidate = EligibleOffer(
            destination=destination,
            position=position,
            offer=best,
            price=offer_price(best),
        )
        record_destination_outcome("candidate")
        return outcome

    def _failed(self, outcome: DestinationOutcome, stage: str, error: ProviderError) -> DestinationOutcome:
        logger.warning(
            f"⚠️ {outcome.destination}: {stage} failed (status={error.status_code}), skipping"
        )
        record_destination_outcome("error")
        outcome.diagnostic = SearchDiagnostic(
            destination=outcome.destination,
            stage=stage,
            status_code=error.status_code,
            error=error.payload,
        )
        return outcome

    def _to_quote(self, request: SearchRequest, best: EligibleOffer) -> BestQuote:
        offer = best.offer
        return BestQuote(
            traveler_name=request.traveler_name,
            origin=request.origin,
            destination=best.destination,
            departure_date=request.departure_date,
            offer_id=offer.get("id"),
            passenger_id=first_passenger_id(offer),
            price=str(offer.get("total_amount")),
            currency=offer.get("total_currency"),
            hold_eligible=is_hold_eligible(offer),
            payment_required_by=payment_required_by(offer),
        )
