"""
Catalog resolution for line items.

Items are matched by exact name within the catalog for their type.
Memberships and packages share one catalog; unknown types use services.
"""

import logging
from decimal import Decimal
from typing import Any, Iterable

from pydantic import BaseModel

from core.billing.tax import to_decimal
from core.models import ItemType

logger = logging.getLogger(__name__)


class CatalogEntry(BaseModel):
    """A sellable catalog row."""

    id: str
    name: str
    unit_price: Decimal = Decimal("0")
    tax_rate_percent: Decimal = Decimal("0")

    model_config = {"frozen": True}


def _catalog_key(item_type: ItemType) -> str:
    if item_type == ItemType.PRODUCT:
        return "product"
    if item_type in (ItemType.MEMBERSHIP, ItemType.PACKAGE):
        return "membership"
    return "service"


class CatalogResolver:
    """Lookup of catalog entries by item type and name or id."""

    def __init__(
        self,
        services: Iterable[CatalogEntry] = (),
        products: Iterable[CatalogEntry] = (),
        memberships: Iterable[CatalogEntry] = (),
    ):
        self._catalogs: dict[str, list[CatalogEntry]] = {
            "service": list(services),
            "product": list(products),
            "membership": list(memberships),
        }

    @classmethod
    def from_api(
        cls,
        services: list[dict[str, Any]] | None = None,
        products: list[dict[str, Any]] | None = None,
        memberships: list[Any] | None = None,
    ) -> "CatalogResolver":
        """
        Build from the backend list shapes.

        Services carry `price`, products `selling_price` (or `price`), and the
        tax rate arrives as `tax_prcnt` or `tax`. Rows without a name are skipped.
        """
        def entries(rows, price_keys):
            built = []
            for row in rows or []:
                if isinstance(row, str):
                    row = {"id": row, "name": row}
                if not row.get("name"):
                    continue
                price = next((row[k] for k in price_keys if row.get(k) is not None), 0)
                built.append(CatalogEntry(
                    id=str(row.get("id", row["name"])),
                    name=row["name"],
                    unit_price=to_decimal(price),
                    tax_rate_percent=to_decimal(row.get("tax_prcnt") or row.get("tax") or 0),
                ))
            return built

        return cls(
            services=entries(services, ("price",)),
            products=entries(products, ("selling_price", "price")),
            memberships=entries(memberships, ("price",)),
        )

    def entries_for(self, item_type: ItemType) -> list[CatalogEntry]:
        return self._catalogs[_catalog_key(item_type)]

    def names_for(self, item_type: ItemType) -> list[str]:
        """Unique names for the item-name dropdown, in catalog order."""
        return list(dict.fromkeys(e.name for e in self.entries_for(item_type)))

    def resolve(self, item_type: ItemType, name: str) -> CatalogEntry | None:
        """
        Find the entry whose name equals `name` exactly.

        Returns None (and logs) when nothing matches; the caller keeps the
        item's entered price and tax.
        """
        for entry in self.entries_for(item_type):
            if entry.name == name:
                return entry
        logger.warning(
            f"No catalog entry found for {item_type.value}: {name!r} "
            f"({len(self.entries_for(item_type))} entries)"
        )
        return None

    def find_by_id(self, item_type: ItemType, catalog_id) -> CatalogEntry | None:
        if catalog_id is None:
            return None
        for entry in self.entries_for(item_type):
            if entry.id == str(catalog_id):
                return entry
        return None
