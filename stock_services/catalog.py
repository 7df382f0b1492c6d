"""StaticProductCatalog -- in-memory Product Catalog over configured products."""

from __future__ import annotations

from collections.abc import Iterable

from stock_config.schema import ProductDef


class StaticProductCatalog:
    """Read-only product lookup implementing the ProductCatalog port."""

    def __init__(self, products: Iterable[ProductDef]):
        self._products: dict[str, ProductDef] = {}
        for product in products:
            if product.product_id in self._products:
                raise ValueError(f"Duplicate product id {product.product_id!r}")
            self._products[product.product_id] = product

    @classmethod
    def from_settings(cls, settings) -> StaticProductCatalog:
        return cls(settings.products)

    def resolve_product(self, product_id: str) -> bool:
        return product_id in self._products

    def get(self, product_id: str) -> ProductDef | None:
        return self._products.get(product_id)

    def __len__(self) -> int:
        return len(self._products)
