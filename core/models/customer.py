"""Customer profile as seen by the billing screen."""

import logging
import re
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from utils.timezone import parse_iso

logger = logging.getLogger(__name__)

_DAY_MONTH = re.compile(r"^\d{2}/\d{2}$")
_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")


def to_day_month(value) -> str:
    """
    Render a birthday/anniversary as dd/mm.

    Accepts 'dd/mm' unchanged and anything starting with an ISO date.
    Unparseable input is returned as given.
    """
    if not value:
        return ""
    text = str(value)
    if _DAY_MONTH.match(text):
        return text
    match = _ISO_DATE.match(text)
    if match:
        return f"{match.group(3)}/{match.group(2)}"
    return text


def _names(entries) -> list[str]:
    if not isinstance(entries, list):
        return []
    names = []
    for entry in entries:
        name = entry if isinstance(entry, str) else (entry or {}).get("name", "")
        if name:
            names.append(name)
    return names


class CustomerProfile(BaseModel):
    """
    Customer identity plus the live balances billing depends on.

    `advance_amount` is a stored credit that the ledger treats as an
    implicit payment. It always comes from here, never from a saved bill.
    """

    id: str | None = None
    name: str = ""
    gender: str = ""
    phone: str = Field("", description="Digits as typed/displayed, without country code")
    contact_no: str = Field("", description="Phone as stored by the backend (E.164)")
    address: str = ""
    birthday: str = ""
    anniversary: str = ""
    loyalty_points: Decimal = Decimal("0")
    wallet_balance: Decimal = Decimal("0")
    dues: Decimal = Decimal("0")
    advance_amount: Decimal = Decimal("0")
    referral_code: str = ""
    memberships: list[str] = Field(default_factory=list)
    packages: list[str] = Field(default_factory=list)
    last_visit: datetime | None = None

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "CustomerProfile":
        """
        Build from the backend customer shape.

        Only keys the backend actually returned are set, so callers can merge
        with `model_dump(exclude_unset=True)` without blanking local values.
        """
        fields: dict[str, Any] = {}
        if raw.get("id") is not None:
            fields["id"] = str(raw["id"])

        for source, target in (
            ("name", "name"),
            ("gender", "gender"),
            ("address", "address"),
            ("referralCode", "referral_code"),
        ):
            if raw.get(source):
                fields[target] = raw[source]

        if raw.get("phoneNumber"):
            digits = re.sub(r"\D", "", str(raw["phoneNumber"]))
            fields["contact_no"] = raw["phoneNumber"]
            fields["phone"] = re.sub(r"^91", "", digits) or digits

        for source, target in (
            ("loyaltyPoints", "loyalty_points"),
            ("walletBalance", "wallet_balance"),
            ("dues", "dues"),
            ("advanceAmount", "advance_amount"),
        ):
            if raw.get(source) is not None:
                fields[target] = raw[source]

        if "memberships" in raw:
            fields["memberships"] = _names(raw["memberships"])
        if "servicePackages" in raw:
            fields["packages"] = _names(raw["servicePackages"])

        for source in ("birthday", "anniversary"):
            if raw.get(source):
                fields[source] = to_day_month(raw[source])

        if raw.get("lastVisit"):
            try:
                fields["last_visit"] = parse_iso(str(raw["lastVisit"]))
            except ValueError:
                logger.warning(f"Ignoring unparseable lastVisit {raw['lastVisit']!r}")

        return cls(**fields)

    @property
    def membership_summary(self) -> str:
        return ", ".join(self.memberships)
