"""
HTTP client for the billing backend.

Every endpoint is store-scoped; the store comes from the active
store context. Responses use the `{success, data, message, errors}`
envelope and this client returns the unwrapped `data`.
"""

import logging
from typing import Any
from urllib.parse import quote
from uuid import uuid4

import requests

from utils.store_context import store_path

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """
    Raised when a backend request fails.

    `status` is 0 for connection failures. `field_errors` carries the
    backend's structured `errors` list when it sent one.
    """

    def __init__(
        self,
        message: str,
        status: int = 0,
        field_errors: list[dict[str, Any]] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.field_errors = field_errors or []

    @property
    def user_message(self) -> str:
        """Message plus the first field error, as shown to the user."""
        if not self.field_errors:
            return self.message
        first = self.field_errors[0]
        return f"{self.message}\n{first.get('field')}: {first.get('message')}"


class BackendClient:
    """Billing backend REST client."""

    def __init__(self, base_url: str, auth_token: str | None = None, timeout: int = 15):
        """
        Initialize the client.

        Args:
            base_url: API root including version, e.g. http://localhost:3000/api/v1
            auth_token: Bearer token sent on every request
            timeout: Per-request timeout in seconds

        Raises:
            ValueError: If base_url is empty
        """
        if not base_url:
            raise ValueError("base_url is required")

        self.base_url = base_url.rstrip("/")
        self.auth_token = auth_token
        self.timeout = timeout

    @classmethod
    def from_config(cls, config, auth_token: str | None = None) -> "BackendClient":
        return cls(config.api_base_url, auth_token=auth_token, timeout=config.request_timeout_seconds)

    def _request(
        self,
        method: str,
        path: str,
        body: dict | None = None,
        headers: dict | None = None,
    ) -> Any:
        """
        Send a request and unwrap the response envelope.

        Raises:
            TransportError: On connection failure, non-2xx status or invalid JSON
        """
        url = f"{self.base_url}{path}"
        request_headers = {"Content-Type": "application/json"}
        if self.auth_token:
            request_headers["Authorization"] = f"Bearer {self.auth_token}"
        if headers:
            request_headers.update(headers)

        try:
            response = requests.request(
                method,
                url,
                json=body,
                headers=request_headers,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Backend connection failed for {method} {path}: {e}")
            raise TransportError("Network error. Please check your internet connection.")

        try:
            data = response.json() if response.text else {}
        except requests.exceptions.JSONDecodeError:
            logger.error(f"Backend returned invalid JSON for {method} {path}: {response.text[:200]}")
            raise TransportError("Invalid response from server", status=response.status_code)

        if not response.ok:
            message = data.get("message") or "Something went wrong"
            errors = data.get("errors") if isinstance(data.get("errors"), list) else None
            logger.error(f"Backend error {response.status_code} for {method} {path}: {message}")
            raise TransportError(message, status=response.status_code, field_errors=errors)

        if isinstance(data, dict) and "data" in data:
            return data["data"]
        return data

    # =========================================================================
    # Bills
    # =========================================================================

    def save_bill(self, payload: dict, idempotency_key: str | None = None) -> dict:
        """
        Create a finalized bill.

        Args:
            payload: Save body built by the payload codec
            idempotency_key: Reused on retry so a timed-out save is not duplicated
        """
        key = idempotency_key or f"bill-{uuid4().hex}"
        data = self._request(
            "POST",
            store_path("billing", "/bills"),
            body=payload,
            headers={"Idempotency-Key": key},
        )
        bill = data.get("bill", data) if isinstance(data, dict) else data
        logger.info(f"Saved bill {bill.get('id') if isinstance(bill, dict) else ''}")
        return bill

    def hold_bill(self, payload: dict) -> dict:
        return self._request("POST", store_path("billing", "/bills/hold"), body=payload)

    def list_held_bills(self) -> list[dict]:
        data = self._request("GET", store_path("billing", "/bills/held"))
        if isinstance(data, dict):
            return data.get("held") or []
        return data or []

    def get_held_bill(self, held_id: str) -> dict:
        """Returns `{payload, customer_summary, ...}`."""
        data = self._request("GET", store_path("billing", f"/bills/held/{quote(str(held_id), safe='')}"))
        if isinstance(data, dict) and "held" in data:
            return data["held"]
        return data

    def get_bill(self, bill_id: str) -> dict:
        data = self._request("GET", store_path("billing", f"/bills/{quote(str(bill_id), safe='')}"))
        if isinstance(data, dict) and "bill" in data:
            return data["bill"]
        return data

    # =========================================================================
    # Customers
    # =========================================================================

    def get_customer_by_phone(self, phone_e164: str) -> dict | None:
        """Customer for a full E.164 number, or None when not found."""
        try:
            data = self._request(
                "GET",
                store_path("customers", f"/by-phone/{quote(phone_e164, safe='')}"),
            )
        except TransportError as e:
            if e.status == 404:
                return None
            raise
        return (data or {}).get("customer")

    def get_customer(self, customer_id: str) -> dict | None:
        data = self._request("GET", store_path("customers", f"/{quote(str(customer_id), safe='')}"))
        return (data or {}).get("customer")

    # =========================================================================
    # Reference data
    # =========================================================================

    def _list(self, prefix: str, key: str) -> list:
        data = self._request("GET", store_path(prefix))
        if isinstance(data, dict):
            return data.get(key) or []
        return data or []

    def list_services(self) -> list[dict]:
        return self._list("services", "services")

    def list_products(self) -> list[dict]:
        return self._list("products", "products")

    def list_memberships(self) -> list:
        return self._list("memberships", "memberships")

    def list_coupons(self) -> list[dict]:
        return self._list("coupons", "coupons")

    def list_staff(self) -> list[dict]:
        return self._list("staff", "staff")

    def get_store_profile(self) -> dict:
        data = self._request("GET", store_path("stores"))
        if isinstance(data, dict) and "store" in data:
            return data["store"]
        return data or {}

    def get_receipt_settings(self) -> dict:
        data = self._request("GET", store_path("stores", "/receipt-settings"))
        if isinstance(data, dict) and "receipt_settings" in data:
            return data["receipt_settings"]
        return data or {}
