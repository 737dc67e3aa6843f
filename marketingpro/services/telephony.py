# marketingpro/services/telephony.py
import logging
from dataclasses import dataclass

import requests

from marketingpro.errors import ProvisioningFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssignedNumber:
    phone_number: str
    provider_number_id: str


class TelnyxClient:
    """Orders SMS-capable numbers from the Telnyx v2 API."""

    def __init__(self, api_key, base_url="https://api.telnyx.com/v2", timeout=10):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_config(cls, config):
        return cls(
            api_key=config.get("TELNYX_API_KEY", ""),
            base_url=config.get("TELNYX_BASE_URL", "https://api.telnyx.com/v2"),
            timeout=config.get("TELNYX_TIMEOUT_SECONDS", 10),
        )

    @property
    def _headers(self):
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _request(self, method, path, **kwargs):
        try:
            response = requests.request(
                method,
                f"{self.base_url}{path}",
                headers=self._headers,
                timeout=self.timeout,
                **kwargs,
            )
        except requests.RequestException as e:
            raise ProvisioningFailure(f"Telnyx request failed: {e}") from e

        if not response.ok:
            detail = response.reason
            try:
                errors = response.json().get("errors") or []
                if errors:
                    detail = errors[0].get("detail", detail)
            except ValueError:
                pass
            raise ProvisioningFailure(f"Telnyx API error ({response.status_code}): {detail}")

        return response.json()

    def search_available_numbers(self, area_code=None, limit=10):
        params = {
            "filter[features]": "sms,mms",
            "filter[limit]": str(limit),
        }
        if area_code:
            params["filter[national_destination_code]"] = area_code

        return self._request("GET", "/available_phone_numbers", params=params).get("data") or []

    def purchase_number(self, phone_number):
        data = self._request(
            "POST",
            "/number_orders",
            json={"phone_numbers": [{"phone_number": phone_number}]},
        )
        return data.get("data") or {}

    def assign_number(self, user_id, area_code=None):
        """Search for an available number and order the first match."""
        available = self.search_available_numbers(area_code=area_code)
        if not available:
            raise ProvisioningFailure("No phone numbers available from Telnyx")

        phone_number = available[0]["phone_number"]
        order = self.purchase_number(phone_number)

        logger.info(
            "Telnyx number ordered",
            extra={"user_id": user_id, "phone_number": phone_number, "order_id": order.get("id")},
        )
        return AssignedNumber(phone_number=phone_number, provider_number_id=order.get("id"))

    def release_number(self, provider_number_id):
        self._request("POST", f"/phone_numbers/{provider_number_id}/actions/release")
