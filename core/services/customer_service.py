"""
Customer enrichment for the working invoice.

Phone lookups and id fetches fill the draft's customer from the backend.
Lookups are guarded against two races:

- A response for an older request than the latest one issued is discarded.
- A field the user edited after the request was issued is never overwritten.

Both use one monotonic clock per draft: every edit and every request takes
the next tick.
"""

import logging
import re
from dataclasses import dataclass, field

from clients.backend_client import BackendClient, TransportError
from core.billing.payload import phone_to_e164
from core.models import CustomerProfile, InvoiceDraft

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {
    "name", "gender", "phone", "contact_no", "address",
    "birthday", "anniversary", "referral_code",
}
# Always kept through a "not found" lookup, typed or not
_KEPT_ON_MISS = ("name", "phone", "contact_no")


def normalize_phone(raw: str | None, country_code: str = "+91") -> str | None:
    """
    Lookup key for a typed phone number.

    Returns None until at least 10 digits are present.
    """
    digits = re.sub(r"\D", "", str(raw or ""))
    if len(digits) < 10:
        return None
    return phone_to_e164(digits, country_code)


@dataclass(frozen=True)
class LookupRequest:
    """An issued phone lookup."""
    draft_id: str
    key: str
    token: int


@dataclass
class _LookupState:
    clock: int = 0
    latest_token: int = 0
    last_key: str | None = None
    touched: dict[str, int] = field(default_factory=dict)

    def tick(self) -> int:
        self.clock += 1
        return self.clock


class CustomerService:
    """Customer lookups and edits against a draft's customer."""

    def __init__(self, backend: BackendClient, country_code: str = "+91"):
        self.backend = backend
        self.country_code = country_code
        self._states: dict[str, _LookupState] = {}

    def _state(self, draft_id: str) -> _LookupState:
        return self._states.setdefault(draft_id, _LookupState())

    def forget(self, draft_id: str) -> None:
        """Drop lookup state for a draft that was reset or discarded."""
        self._states.pop(draft_id, None)

    def touch(self, draft_id: str, field_name: str) -> None:
        """Record a user edit so in-flight lookups leave this field alone."""
        self._state(draft_id).touched[field_name] = self._state(draft_id).tick()

    # =========================================================================
    # Edits
    # =========================================================================

    def edit_field(self, draft: InvoiceDraft, field_name: str, value) -> LookupRequest | None:
        """
        Apply a user edit to the draft's customer.

        Phone edits keep phone and contact_no in sync and, once the number
        looks complete, issue a lookup request.

        Returns:
            LookupRequest to fetch, or None when no lookup is needed

        Raises:
            ValueError: If the field is not user-editable
        """
        if field_name not in EDITABLE_FIELDS:
            raise ValueError(f"Customer field '{field_name}' is not editable")

        updates = {field_name: value or ""}
        if field_name in ("phone", "contact_no"):
            updates = {"phone": re.sub(r"\D", "", str(value or "")), "contact_no": value or ""}
        for name in updates:
            self.touch(draft.id, name)

        draft.customer = CustomerProfile.model_validate(
            {**draft.customer.model_dump(), **updates}
        )

        if field_name in ("phone", "contact_no"):
            return self.begin_lookup(draft)
        return None

    # =========================================================================
    # Phone lookup
    # =========================================================================

    def begin_lookup(self, draft: InvoiceDraft) -> LookupRequest | None:
        """
        Issue a lookup for the draft's current phone.

        Returns None when the number is incomplete or identical to the last
        key fetched for this draft.
        """
        key = normalize_phone(draft.customer.phone or draft.customer.contact_no, self.country_code)
        state = self._state(draft.id)
        if key is None or key == state.last_key:
            return None

        state.last_key = key
        state.latest_token = state.tick()
        return LookupRequest(draft_id=draft.id, key=key, token=state.latest_token)

    def fetch(self, request: LookupRequest) -> dict | None:
        """
        Run the backend lookup for a request.

        Raises:
            TransportError: On backend failure
        """
        return self.backend.get_customer_by_phone(request.key)

    def apply_lookup(self, draft: InvoiceDraft, request: LookupRequest, raw: dict | None) -> bool:
        """
        Merge a lookup response into the draft's customer.

        Returns:
            True if the response was applied, False if it was stale
        """
        state = self._state(draft.id)
        if request.token != state.latest_token:
            logger.debug(f"Discarding stale lookup {request.key} (token {request.token} < {state.latest_token})")
            return False

        current = draft.customer
        if raw:
            updates = CustomerProfile.from_api(raw).model_dump(exclude_unset=True)
        else:
            # Not found: clear what an earlier match filled in. Fields the user
            # ever typed on this draft stay, whenever they were typed.
            blank = CustomerProfile().model_dump()
            updates = {
                k: v for k, v in blank.items()
                if k not in _KEPT_ON_MISS and k not in state.touched
            }

        updates = {
            k: v for k, v in updates.items()
            if state.touched.get(k, 0) <= request.token
        }
        draft.customer = current.model_copy(update=updates)
        logger.info(f"Customer lookup {request.key}: {'found' if raw else 'not found'}")
        return True

    def lookup_by_phone(self, draft: InvoiceDraft, request: LookupRequest | None = None) -> bool:
        """
        Issue (or take) a lookup, fetch it and merge the result.

        A backend failure keeps the current values and allows the same
        number to be retried.
        """
        request = request or self.begin_lookup(draft)
        if request is None:
            return False
        try:
            raw = self.fetch(request)
        except TransportError as e:
            logger.warning(f"Customer lookup failed for {request.key}: {e.message}")
            state = self._state(draft.id)
            if state.last_key == request.key:
                state.last_key = None
            return False
        return self.apply_lookup(draft, request, raw)

    # =========================================================================
    # Fetch by id
    # =========================================================================

    def fetch_by_id(self, customer_id: str | None, fallback: CustomerProfile) -> CustomerProfile:
        """
        Live customer record merged over a fallback.

        Used when reopening held invoices and bills, so current balances win
        over snapshot values. Returns the fallback unchanged when the id is
        missing, the customer is gone, or the backend fails.
        """
        if not customer_id:
            return fallback
        try:
            raw = self.backend.get_customer(customer_id)
        except TransportError as e:
            logger.warning(f"Customer fetch failed for {customer_id}, using fallback: {e.message}")
            return fallback
        if not raw:
            logger.warning(f"Customer {customer_id} not found, using fallback")
            return fallback
        return fallback.model_copy(update=CustomerProfile.from_api(raw).model_dump(exclude_unset=True))
