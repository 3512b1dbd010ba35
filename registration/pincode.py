from typing import Dict, List, Literal, Optional

import httpx
import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger(__name__)


class PinCodeLocation(BaseModel):
    pin_code: str
    cities: List[str] = Field(default_factory=list)
    state: str
    source: Literal["api", "fallback"]


FALLBACK_PIN_CODES: Dict[str, Dict[str, object]] = {
    "110001": {"cities": ["New Delhi"], "state": "Delhi"},
    "400001": {"cities": ["Mumbai"], "state": "Maharashtra"},
    "560001": {"cities": ["Bangalore"], "state": "Karnataka"},
    "700001": {"cities": ["Kolkata"], "state": "West Bengal"},
    "600001": {"cities": ["Chennai"], "state": "Tamil Nadu"},
    "500001": {"cities": ["Hyderabad"], "state": "Telangana"},
    "380001": {"cities": ["Ahmedabad"], "state": "Gujarat"},
    "302001": {"cities": ["Jaipur"], "state": "Rajasthan"},
    "411001": {"cities": ["Pune"], "state": "Maharashtra"},
    "226001": {"cities": ["Lucknow"], "state": "Uttar Pradesh"},
    "160001": {"cities": ["Chandigarh"], "state": "Chandigarh"},
    "682001": {"cities": ["Kochi"], "state": "Kerala"},
    "751001": {"cities": ["Bhubaneswar"], "state": "Odisha"},
    "800001": {"cities": ["Patna"], "state": "Bihar"},
    "492001": {"cities": ["Raipur"], "state": "Chhattisgarh"},
}


class PinCodeLookup:
    """
    City/state lookup for a 6-digit PIN code against the India Post API.

    Any failure (non-success status, empty office list, network or decode
    error) falls back to a small built-in table. A miss there returns None
    and the user types city and state by hand.
    """

    def __init__(
        self,
        base_url: str = "https://api.postalpincode.in",
        client: Optional[httpx.Client] = None,
        timeout: float = 5.0,
        enabled: bool = True,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.Client(timeout=timeout)
        self.enabled = enabled

    def lookup(self, pin_code: str) -> Optional[PinCodeLocation]:
        if len(pin_code) != 6 or not pin_code.isdigit():
            return None

        if self.enabled:
            location = self._from_api(pin_code)
            if location is not None:
                return location

        return self._from_fallback(pin_code)

    def _from_api(self, pin_code: str) -> Optional[PinCodeLocation]:
        try:
            resp = self.client.get(f"{self.base_url}/pincode/{pin_code}")
            resp.raise_for_status()
            payload = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("pincode_lookup_failed", pin_code=pin_code, error=str(e))
            return None

        entry = payload[0] if isinstance(payload, list) and payload else None
        if not isinstance(entry, dict):
            return None
        offices = entry.get("PostOffice") or []
        if entry.get("Status") != "Success" or not offices:
            logger.info("pincode_not_found", pin_code=pin_code, status=entry.get("Status"))
            return None

        cities: List[str] = []
        for office in offices:
            district = office.get("District")
            if district and district not in cities:
                cities.append(district)

        return PinCodeLocation(
            pin_code=pin_code,
            cities=cities,
            state=offices[0].get("State") or "",
            source="api",
        )

    @staticmethod
    def _from_fallback(pin_code: str) -> Optional[PinCodeLocation]:
        known = FALLBACK_PIN_CODES.get(pin_code)
        if known is None:
            logger.info("pincode_manual_entry", pin_code=pin_code)
            return None
        return PinCodeLocation(
            pin_code=pin_code,
            cities=list(known["cities"]),
            state=str(known["state"]),
            source="fallback",
        )
