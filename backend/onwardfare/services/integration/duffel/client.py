"""
Duffel API Client
OnwardFare - offer requests, offers and orders

Authenticates with a static bearer key plus the Duffel-Version header.
Every non-success answer is raised as ProviderError carrying the upstream
status and body; nothing here retries or swallows errors.
"""

from datetime import date
from typing import Any, Dict, List, Optional
import logging

import httpx

from onwardfare.config import Settings
from onwardfare.core.metrics import track_external_api
from onwardfare.models.flight_models import CABIN_CLASSES, HoldReceipt, OfferRequestResult
from onwardfare.services.flight.mappers.mapper import map_order_response
from onwardfare.services.integration.common.errors import (
    ProviderConfigurationError,
    ProviderError,
)

logger = logging.getLogger("OnwardFare-Duffel")


def _check_iata(code: str, field: str) -> str:
    if not isinstance(code, str) or len(code) != 3 or not code.isalpha():
        raise ValueError(f"{field} must be a 3-letter IATA code, got {code!r}")
    return code.upper()


def _error_payload(response: httpx.Response) -> Any:
    """Parsed JSON error body, or the raw text when it is not JSON."""
    try:
        return response.json()
    except ValueError:
        return {"raw": response.text}


class DuffelClient:
    """Thin async adapter over the Duffel Air API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.duffel.com",
        version: str = "v2",
        timeout: float = 30.0,
        return_offers: bool = True,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._api_key = api_key
        self._version = version
        self._return_offers = return_offers
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "DuffelClient":
        return cls(
            api_key=settings.duffel_api_key,
            base_url=settings.duffel_base_url,
            version=settings.duffel_version,
            timeout=settings.duffel_timeout_seconds,
            return_offers=settings.duffel_return_offers,
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def __aenter__(self) -> "DuffelClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    # ───────────────────────────────────────────────────────────────
    # TRANSPORT
    # ───────────────────────────────────────────────────────────────

    def _headers(self) -> Dict[str, str]:
        if not self._api_key:
            raise ProviderConfigurationError("DUFFEL_API_KEY missing")
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Duffel-Version": self._version,
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    async def _send(
        self,
        operation: str,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        headers = self._headers()
        try:
            return await self._http.request(method, path, params=params, json=body, headers=headers)
        except httpx.RequestError as e:
            logger.error(f"Duffel {operation} transport error: {e!r}")
            raise ProviderError(None, {"message": str(e) or e.__class__.__name__}, operation) from e

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Send and return the `data` member of a successful JSON response."""
        with track_external_api(operation):
            response = await self._send(operation, method, path, params=params, body=body)

            if not response.is_success:
                logger.warning(f"Duffel {operation} failed: {response.status_code}")
                raise ProviderError(response.status_code, _error_payload(response), operation)

            try:
                payload = response.json()
            except ValueError:
                raise ProviderError(response.status_code, {"raw": response.text}, operation)

        if isinstance(payload, dict) and "data" in payload:
            return payload["data"]
        return payload

    # ───────────────────────────────────────────────────────────────
    # OPERATIONS
    # ───────────────────────────────────────────────────────────────

    async def create_offer_request(
        self,
        origin: str,
        destination: str,
        departure_date: date,
        cabin_class: str = "economy",
    ) -> OfferRequestResult:
        """
        One-way, one adult offer request. Offers come back inline when the
        provider embeds them; otherwise only the request id is returned.
        """
        origin = _check_iata(origin, "origin")
        destination = _check_iata(destination, "destination")
        if cabin_class not in CABIN_CLASSES:
            raise ValueError(f"unsupported cabin class {cabin_class!r}")

        body = {
            "data": {
                "slices": [{
                    "origin": origin,
                    "destination": destination,
                    "departure_date": departure_date.isoformat(),
                }],
                "passengers": [{"type": "adult"}],
                "cabin_class": cabin_class,
            }
        }
        params = {"return_offers": "true" if self._return_offers else "false"}

        data = await self._request("create_offer_request", "POST", "/air/offer_requests", params=params, body=body)
        if not isinstance(data, dict):
            raise ProviderError(None, {"raw": data}, "create_offer_request")

        offers = data.get("offers")
        return OfferRequestResult(
            offer_request_id=data.get("id"),
            offers=[o for o in offers if isinstance(o, dict)] if isinstance(offers, list) else None,
        )

    async def list_offers(self, offer_request_id: str) -> List[Dict[str, Any]]:
        """Offers for an offer request. An empty listing is [] rather than an error."""
        data = await self._request(
            "list_offers", "GET", "/air/offers",
            params={"offer_request_id": offer_request_id},
        )
        if not isinstance(data, list):
            return []
        return [o for o in data if isinstance(o, dict)]

    async def get_offer(self, offer_id: str) -> Dict[str, Any]:
        data = await self._request("get_offer", "GET", f"/air/offers/{offer_id}")
        return data if isinstance(data, dict) else {}

    async def create_order(
        self,
        selected_offer_id: str,
        passengers: List[Dict[str, Any]],
        include_payment: bool = False,
        amount: Optional[str] = None,
        currency: Optional[str] = None,
    ) -> HoldReceipt:
        """
        Create an order for one offer.

        Without include_payment the order is a hold and the body carries no
        `payments` key at all, which is how Duffel reserves without charging.
        """
        data: Dict[str, Any] = {
            "selected_offers": [selected_offer_id],
            "passengers": passengers,
            "type": "instant" if include_payment else "hold",
        }
        if include_payment:
            if not amount or not currency:
                raise ValueError("amount and currency are required when include_payment is set")
            data["payments"] = [{"type": "balance", "amount": amount, "currency": currency}]

        order = await self._request("create_order", "POST", "/air/orders", body={"data": data})
        if not isinstance(order, dict):
            order = {}

        logger.info(f"🧾 Duffel order created | offer={selected_offer_id} | order={order.get('id')}")
        return map_order_response(order)

    async def list_airlines(self, limit: int = 5) -> httpx.Response:
        """Connectivity probe; the raw response is handed back untouched."""
        with track_external_api("list_airlines"):
            return await self._send("list_airlines", "GET", "/air/airlines", params={"limit": limit})
