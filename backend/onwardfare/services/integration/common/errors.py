"""
Error taxonomy shared by the Duffel client, the fare search and the hold flow.
"""
from typing import Any, List, Optional

from onwardfare.models.flight_models import SearchDiagnostic


class OnwardFareError(Exception):
    """Base class for every error raised by this package."""


class InputValidationError(OnwardFareError):
    """A required field is missing or empty. Never reaches the provider."""


class ProviderConfigurationError(OnwardFareError):
    """The provider credential is not configured."""


class ProviderError(OnwardFareError):
    """
    Non-success answer (or transport failure) from the offer provider.

    `payload` is the provider's JSON error body, untouched, or {"raw": text}
    when the body was not JSON. `status_code` is None for transport failures.
    """

    def __init__(self, status_code: Optional[int], payload: Any, operation: str = ""):
        self.status_code = status_code
        self.payload = payload
        self.operation = operation
        super().__init__(f"Duffel {operation or 'request'} failed: status={status_code}")

    def to_dict(self) -> dict:
        return {
            "status": self.status_code,
            "operation": self.operation,
            "details": self.payload,
        }


class NoEligibleOffersError(OnwardFareError):
    """The search finished without a single eligible candidate."""

    reason = "no_offers"

    def __init__(self, diagnostics: Optional[List[SearchDiagnostic]] = None, reason: Optional[str] = None):
        self.diagnostics = list(diagnostics or [])
        if reason:
            self.reason = reason
        super().__init__(f"No eligible offers ({self.reason})")


class OriginNotAllowedError(NoEligibleOffersError):
    reason = "origin_not_allowed"

    def __init__(self, origin: str):
        self.origin = origin
        super().__init__()


class MissingPassengerError(OnwardFareError):
    """The offer carries no passenger id and the caller did not supply one."""

    def __init__(self, offer_id: str):
        self.offer_id = offer_id
        super().__init__(f"No passenger id available for offer {offer_id}")
