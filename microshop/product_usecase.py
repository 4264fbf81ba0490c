"""Product and category creation."""

from __future__ import annotations

from dataclasses import dataclass

from .database import Database
from .observability import extract_traceparent
from .product_categories import ProductCategory, ProductCategoryRepository
from .products import Product, ProductRepository


@dataclass(frozen=True)
class CreateProductInput:
    """What a caller supplies to create a product."""

    name: str = ""
    category_id: int = 0
    description: str = ""
    price: float = 0.0
    stock: int = 0
    sku: str = ""
    is_active: bool = False


@dataclass(frozen=True)
class CreateProductCategoryInput:
    """What a caller supplies to create a product category."""

    name: str = ""
    description: str = ""


class ProductUsecase:
    """Creates products and categories inside database transactions."""

    def __init__(
        self,
        database: Database,
        products: ProductRepository,
        categories: ProductCategoryRepository,
    ) -> None:
        self.database = database
        self.products = products
        self.categories = categories

    def create_product(self, data: CreateProductInput) -> int:
        """Store a new product and return its id."""
        with self.database.transaction() as conn:
            try:
                return self.products.create(
                    Product(
                        name=data.name,
                        description=data.description,
                        price=data.price,
                        stock=data.stock,
                        sku=data.sku,
                        is_active=data.is_active,
                        category_id=data.category_id,
                        trace_parent=extract_traceparent(),
                    ),
                    conn,
                )
            except Exception as exc:
                raise RuntimeError(f"failed to create product: {exc}") from exc

    def create_product_category(self, data: CreateProductCategoryInput) -> int:
        """Store a new product category and return its id."""
        with self.database.transaction() as conn:
            try:
                return self.categories.create(
                    ProductCategory(
                        name=data.name,
                        description=data.description,
                        trace_parent=extract_traceparent(),
                    ),
                    conn,
                )
            except Exception as exc:
                raise RuntimeError(f"failed create product categories: {exc}") from exc