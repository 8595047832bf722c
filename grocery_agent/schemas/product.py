"""Pydantic schemas for catalog products and search results."""

from pydantic import Field

from grocery_agent.schemas.common import BaseSchema


class CatalogProduct(BaseSchema):
    """A product document as stored in the catalog."""

    id: str
    name: str
    brand: str = "Generic"
    category: str | None = None
    description: str | None = None
    sale_price: float = 0.0
    market_price: float = 0.0
    discount: float = 0.0
    rating: float = 0.0
    is_on_sale: bool = False
    embedding: list[float] | None = Field(None, exclude=True)


class ProductRef(BaseSchema):
    """Read-only projection of a catalog product handed to the model."""

    id: str
    name: str
    brand: str = "Generic"
    price: float
    category: str | None = None
    rating: float | None = None

    @classmethod
    def from_catalog(cls, product: CatalogProduct) -> "ProductRef":
        return cls(
            id=product.id,
            name=product.name,
            brand=product.brand or "Generic",
            price=product.sale_price,
            category=product.category,
            rating=product.rating,
        )


class ProductSearchResult(BaseSchema):
    """A single product in a search_products tool response."""

    id: str
    name: str
    brand: str = "Generic"
    category: str | None = None
    sale_price: float = 0.0
    market_price: float = 0.0
    discount: float = 0.0
    rating: float = 0.0
    description: str = ""
    semantic_score: float | None = None
    is_on_sale: bool = False
    product_url: str


class ProductSearchResponse(BaseSchema):
    """Structured result of a catalog search."""

    products: list[ProductSearchResult]
    total_found: int
    total_cost: float
    search_type: str
