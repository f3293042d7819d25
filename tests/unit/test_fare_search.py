import asyncio

import pytest

from onwardfare.models.flight_models import PriceCeiling, SearchPolicy, SearchRequest
from onwardfare.services.flight.search import (
    FareSearchAggregator,
    candidate_destinations,
    select_best,
)
from onwardfare.services.integration.common.errors import (
    NoEligibleOffersError,
    OriginNotAllowedError,
    ProviderError,
)


def _request(travel_date, pool, origin="BKK"):
    return SearchRequest(
        traveler_name="Jane Doe",
        origin=origin,
        departure_date=travel_date,
        destination_pool=pool,
    )


def _usd_ceiling(amount):
    return SearchPolicy(price_ceiling=PriceCeiling(amount=amount, currency="USD"))


@pytest.mark.asyncio
async def test_cheapest_destination_wins_under_ceiling(fake_duffel_cls, offer_factory, travel_date):
    duffel = fake_duffel_cls(routes={
        "PNH": [offer_factory("off_pnh", "50.00")],
        "KUL": [offer_factory("off_kul", "45.00")],
    })
    aggregator = FareSearchAggregator(duffel, _usd_ceiling(60))

    quote = await aggregator.search(_request(travel_date, ["PNH", "KUL"]))

    assert quote.destination == "KUL"
    assert quote.price == "45.00"
    assert quote.currency == "USD"
    assert quote.offer_id == "off_kul"
    assert quote.passenger_id == "pas_1"
    assert quote.origin == "BKK"
    assert quote.traveler_name == "Jane Doe"


@pytest.mark.asyncio
async def test_every_offer_over_ceiling_means_no_eligible_offers(fake_duffel_cls, offer_factory, travel_date):
    duffel = fake_duffel_cls(routes={
        "PNH": [offer_factory("off_pnh", "50.00")],
        "KUL": [offer_factory("off_kul", "45.00")],
    })
    aggregator = FareSearchAggregator(duffel, _usd_ceiling(40))

    with pytest.raises(NoEligibleOffersError) as exc:
        await aggregator.search(_request(travel_date, ["PNH", "KUL"]))

    assert exc.value.reason == "price_ceiling"
    assert exc.value.diagnostics == []


@pytest.mark.asyncio
async def test_result_does_not_depend_on_pool_order(fake_duffel_cls, offer_factory, travel_date):
    routes = {
        "PNH": [offer_factory("off_pnh", "80.10")],
        "KUL": [offer_factory("off_kul_a", "99.00"), offer_factory("off_kul_b", "61.25")],
        "SGN": [offer_factory("off_sgn", "70.00")],
    }
    pools = [["PNH", "KUL", "SGN"], ["SGN", "PNH", "KUL"], ["KUL", "SGN", "PNH"]]

    for pool in pools:
        aggregator = FareSearchAggregator(fake_duffel_cls(routes=routes), SearchPolicy())
        quote = await aggregator.search(_request(travel_date, pool))
        assert quote.offer_id == "off_kul_b"
        assert quote.price == "61.25"


@pytest.mark.asyncio
async def test_price_string_is_kept_verbatim(fake_duffel_cls, offer_factory, travel_date):
    duffel = fake_duffel_cls(routes={"KUL": [offer_factory("off_kul", "45.10000")]})
    aggregator = FareSearchAggregator(duffel, SearchPolicy())

    quote = await aggregator.search(_request(travel_date, ["KUL"]))

    assert quote.price == "45.10000"


@pytest.mark.asyncio
async def test_ties_go_to_earlier_destination(fake_duffel_cls, offer_factory, travel_date):
    duffel = fake_duffel_cls(routes={
        "PNH": [offer_factory("off_pnh", "50.00")],
        "KUL": [offer_factory("off_kul", "50.0")],
    })

    quote = await FareSearchAggregator(duffel, SearchPolicy()).search(_request(travel_date, ["KUL", "PNH"]))
    assert quote.destination == "KUL"

    quote = await FareSearchAggregator(duffel, SearchPolicy()).search(_request(travel_date, ["PNH", "KUL"]))
    assert quote.destination == "PNH"


@pytest.mark.asyncio
async def test_ties_within_destination_keep_provider_order(fake_duffel_cls, offer_factory, travel_date):
    duffel = fake_duffel_cls(routes={
        "KUL": [offer_factory("off_first", "45.00"), offer_factory("off_second", "45.00")],
    })

    quote = await FareSearchAggregator(duffel, SearchPolicy()).search(_request(travel_date, ["KUL"]))

    assert quote.offer_id == "off_first"


@pytest.mark.asyncio
async def test_other_currency_is_not_filtered_by_ceiling(fake_duffel_cls, offer_factory, travel_date):
    duffel = fake_duffel_cls(routes={"KUL": [offer_factory("off_eur", "500.00", currency="EUR")]})

    quote = await FareSearchAggregator(duffel, _usd_ceiling(200)).search(_request(travel_date, ["KUL"]))

    assert quote.offer_id == "off_eur"
    assert quote.currency == "EUR"


@pytest.mark.asyncio
async def test_origin_is_never_searched(fake_duffel_cls, offer_factory, travel_date):
    duffel = fake_duffel_cls(routes={
        "BKK": [offer_factory("off_self", "1.00")],
        "KUL": [offer_factory("off_kul", "45.00")],
    })

    quote = await FareSearchAggregator(duffel, SearchPolicy()).search(_request(travel_date, ["BKK", "KUL"]))

    assert quote.destination == "KUL"
    assert duffel.created == ["KUL"]


@pytest.mark.asyncio
async def test_origin_outside_allow_list_makes_no_provider_calls(fake_duffel_cls, offer_factory, travel_date):
    duffel = fake_duffel_cls(routes={"KUL": [offer_factory("off_kul", "45.00")]})
    policy = SearchPolicy(allowed_origins=frozenset({"DMK"}))

    with pytest.raises(OriginNotAllowedError) as exc:
        await FareSearchAggregator(duffel, policy).search(_request(travel_date, ["KUL"]))

    assert exc.value.reason == "origin_not_allowed"
    assert duffel.created == []


@pytest.mark.asyncio
async def test_failing_destination_is_skipped(fake_duffel_cls, offer_factory, travel_date):
    duffel = fake_duffel_cls(routes={
        "PNH": ProviderError(503, {"errors": [{"title": "Service unavailable"}]}, "create_offer_request"),
        "KUL": [offer_factory("off_kul", "45.00")],
    })

    quote = await FareSearchAggregator(duffel, SearchPolicy()).search(_request(travel_date, ["PNH", "KUL"]))

    assert quote.destination == "KUL"


@pytest.mark.asyncio
async def test_listed_offers_are_fetched_by_request_id(fake_duffel_cls, offer_factory, travel_date):
    duffel = fake_duffel_cls(
        routes={"KUL": [offer_factory("off_kul", "45.00")], "PNH": [offer_factory("off_pnh", "30.00")]},
        listed={"KUL"},
    )

    quote = await FareSearchAggregator(duffel, SearchPolicy()).search(_request(travel_date, ["PNH", "KUL"]))

    assert duffel.listed_calls == ["orq_KUL"]
    assert quote.destination == "PNH"


@pytest.mark.asyncio
async def test_all_failures_report_at_most_five_diagnostics(fake_duffel_cls, travel_date):
    pool = ["AAA", "BBB", "CCC", "DDD", "EEE", "FFF", "GGG"]
    routes = {code: ProviderError(500, {"errors": [{"code": "boom", "destination": code}]}) for code in pool[:4]}
    list_errors = {code: ProviderError(429, {"errors": [{"code": "rate_limited"}]}) for code in pool[4:]}
    duffel = fake_duffel_cls(routes=routes, listed=set(pool[4:]), list_errors=list_errors)

    with pytest.raises(NoEligibleOffersError) as exc:
        await FareSearchAggregator(duffel, SearchPolicy(), fanout_limit=2).search(_request(travel_date, pool))

    diagnostics = exc.value.diagnostics
    assert exc.value.reason == "no_offers"
    assert len(diagnostics) == 5
    assert [d.destination for d in diagnostics] == pool[:5]
    assert diagnostics[0].stage == "create_offer_request"
    assert diagnostics[0].status_code == 500
    assert diagnostics[0].error == {"errors": [{"code": "boom", "destination": "AAA"}]}
    assert diagnostics[4].stage == "list_offers"
    assert diagnostics[4].status_code == 429


@pytest.mark.asyncio
async def test_empty_routes_leave_no_diagnostics(fake_duffel_cls, travel_date):
    duffel = fake_duffel_cls(routes={"PNH": [], "KUL": []}, listed={"KUL"})

    with pytest.raises(NoEligibleOffersError) as exc:
        await FareSearchAggregator(duffel, SearchPolicy()).search(_request(travel_date, ["PNH", "KUL"]))

    assert exc.value.reason == "no_offers"
    assert exc.value.diagnostics == []


@pytest.mark.asyncio
async def test_hold_preference_picks_holdable_offer(fake_duffel_cls, offer_factory, travel_date):
    duffel = fake_duffel_cls(routes={
        "PNH": [offer_factory("off_pnh", "60.00", instant=False)],
        "KUL": [offer_factory("off_kul", "45.00", instant=True)],
    })
    policy = SearchPolicy(prefer_hold_eligible=True)

    quote = await FareSearchAggregator(duffel, policy).search(_request(travel_date, ["PNH", "KUL"]))

    assert quote.offer_id == "off_pnh"
    assert quote.hold_eligible is True
    assert quote.payment_required_by == "2030-01-01T12:00:00Z"


@pytest.mark.asyncio
async def test_hold_preference_falls_back_to_cheapest(fake_duffel_cls, offer_factory, travel_date):
    duffel = fake_duffel_cls(routes={
        "PNH": [offer_factory("off_pnh", "60.00")],
        "KUL": [offer_factory("off_kul", "45.00")],
    })
    policy = SearchPolicy(prefer_hold_eligible=True)

    quote = await FareSearchAggregator(duffel, policy).search(_request(travel_date, ["PNH", "KUL"]))

    assert quote.offer_id == "off_kul"
    assert quote.hold_eligible is False


@pytest.mark.asyncio
async def test_missing_passenger_stub_gives_null_passenger_id(fake_duffel_cls, offer_factory, travel_date):
    duffel = fake_duffel_cls(routes={"KUL": [offer_factory("off_kul", "45.00", passenger_id=None)]})

    quote = await FareSearchAggregator(duffel, SearchPolicy()).search(_request(travel_date, ["KUL"]))

    assert quote.passenger_id is None


@pytest.mark.asyncio
async def test_unexpected_errors_are_not_swallowed(fake_duffel_cls, mocker, travel_date):
    duffel = fake_duffel_cls()
    mocker.patch.object(duffel, "create_offer_request", side_effect=RuntimeError("bug"))

    with pytest.raises(RuntimeError):
        await FareSearchAggregator(duffel, SearchPolicy()).search(_request(travel_date, ["KUL"]))


@pytest.mark.asyncio
async def test_fan_out_respects_limit_and_pool_order(fake_duffel_cls, offer_factory, travel_date):
    pool = ["AAA", "BBB", "CCC", "DDD", "EEE", "FFF"]
    # earlier destinations answer later
    delays = {code: 0.01 * (len(pool) - i) for i, code in enumerate(pool)}
    duffel = fake_duffel_cls(routes={code: [offer_factory(f"off_{code}", "10.00")] for code in pool})
    create = duffel.create_offer_request
    in_flight = 0
    peak = 0

    async def slow_create(origin, destination, departure_date, cabin_class="economy"):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        try:
            await asyncio.sleep(delays[destination])
            return await create(origin, destination, departure_date, cabin_class)
        finally:
            in_flight -= 1

    duffel.create_offer_request = slow_create

    quote = await FareSearchAggregator(duffel, SearchPolicy(), fanout_limit=2).search(_request(travel_date, pool))

    assert peak == 2
    assert sorted(duffel.created) == pool
    assert quote.destination == "AAA"
    assert quote.offer_id == "off_AAA"


@pytest.mark.asyncio
async def test_offer_with_non_string_id_is_skipped(fake_duffel_cls, offer_factory, travel_date):
    duffel = fake_duffel_cls(routes={
        "PNH": [offer_factory(12345, "5.00")],
        "KUL": [offer_factory("off_kul", "45.00")],
    })

    quote = await FareSearchAggregator(duffel, SearchPolicy()).search(_request(travel_date, ["PNH", "KUL"]))

    assert quote.offer_id == "off_kul"


def test_candidate_destinations_drop_origin_and_repeats():
    assert candidate_destinations("BKK", ["pnh", "BKK", "KUL", "PNH"]) == ["PNH", "KUL"]


def test_select_best_of_nothing():
    assert select_best([], prefer_hold_eligible=True) is None
