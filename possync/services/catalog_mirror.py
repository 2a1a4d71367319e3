"""Catalog mirror — pull products, customers and settings into the local store.

Full replace per entity, never a merge: the server is authoritative for
catalog data. Each entity is fetched and written on its own; one failing
does not stop the others, and stale data beats no data.
"""

import logging

from ..exceptions import NetworkTransientError, PosSyncError

log = logging.getLogger("possync.catalog")

ENTITIES = ("products", "customers", "settings")


class CatalogMirror:
    def __init__(self, store, client, default_tax_rate: float = 0.1):
        self.store = store
        self.client = client
        self.default_tax_rate = default_tax_rate
        self.network_errors = 0

    async def refresh(self, entities=ENTITIES) -> dict[str, bool]:
        """Mirror each entity independently. Returns entity -> succeeded."""
        self.network_errors = 0
        results = {}
        for entity in entities:
            results[entity] = await self.mirror(entity)
        return results

    async def mirror(self, entity: str) -> bool:
        handler = {
            "products": self.mirror_products,
            "customers": self.mirror_customers,
            "settings": self.mirror_settings,
        }[entity]
        try:
            count = await handler()
        except PosSyncError as e:
            if isinstance(e, NetworkTransientError):
                self.network_errors += 1
            log.warning(f"Failed to mirror {entity}: {e}")
            return False
        except (ValueError, TypeError, AttributeError) as e:
            log.warning(f"Malformed {entity} payload, keeping stale data: {e}")
            return False
        log.info(f"Mirrored {count} {entity}")
        return True

    async def mirror_products(self) -> int:
        products = await self.client.fetch_products()
        return self.store.replace_all("products", [_product(p) for p in products])

    async def mirror_customers(self) -> int:
        customers = await self.client.fetch_customers()
        return self.store.replace_all("customers", [_customer(c) for c in customers])

    async def mirror_settings(self) -> int:
        data = await self.client.fetch_settings()
        tax_rate = data.get("tax_rate")
        self.store.set_setting("tax_rate", self.default_tax_rate if tax_rate is None else tax_rate)
        self.store.set_setting("store_info", data.get("store_info") or {})
        return 2

    # ── Offline reads ────────────────────────────────────────────────

    def products(self, active_only: bool = False) -> list[dict]:
        if active_only:
            return self.store.get_matching("products", "active")
        return self.store.get_all("products")

    def find_product(self, code: str) -> dict | None:
        """Look a product up by barcode, then SKU."""
        for index in ("barcode", "sku"):
            rows = self.store.get_matching("products", index, **{index: code})
            if rows:
                return rows[0]
        return None

    def customers(self) -> list[dict]:
        return self.store.get_all("customers")


_PRODUCT_FIELDS = (
    "id", "name", "retail_price", "wholesale_price", "cost_price", "stock_quantity",
    "barcode", "sku", "status", "is_service", "image_url", "category_id",
    "created_at", "updated_at",
)
_CUSTOMER_FIELDS = ("id", "name", "phone", "email", "address", "created_at")


def _product(p: dict) -> dict:
    row = {k: p.get(k) for k in _PRODUCT_FIELDS}
    row["is_service"] = bool(row["is_service"])
    row["status"] = row["status"] or "active"
    for k in ("retail_price", "wholesale_price", "cost_price"):
        row[k] = float(row[k] or 0)
    row["stock_quantity"] = int(row["stock_quantity"] or 0)
    for k in ("created_at", "updated_at"):
        row[k] = str(row[k]) if row[k] is not None else None
    return row


def _customer(c: dict) -> dict:
    row = {k: c.get(k) for k in _CUSTOMER_FIELDS}
    if row["created_at"] is not None:
        row["created_at"] = str(row["created_at"])
    return row
