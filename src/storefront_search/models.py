from pydantic import BaseModel, Field, field_validator
from typing import Any

from .storage import PLACEHOLDER_IMAGE_URL, NewProduct, split_tags

EMBEDDED_FIELDS: frozenset[str] = frozenset({"name", "description", "category", "tags"})


def _normalize_tags(value: Any) -> Any:
    if value is None:
        return value
    if isinstance(value, (list, tuple)):
        return ", ".join(str(tag).strip() for tag in value if str(tag).strip())
    if isinstance(value, str):
        return ", ".join(split_tags(value))
    return value


def _require_text(value: str | None) -> str | None:
    if value is None:
        return value
    stripped = value.strip()
    if not stripped:
        raise ValueError("must not be blank")
    return stripped


class ExtractedKeyword(BaseModel):
    """Single product keyword recognised in an image, voice clip or utterance"""

    keyword: str = Field(
        description="One or two words naming the product the user is looking for, e.g. 'headphones' or 'running shoes'."
    )


class ProductDraft(BaseModel):
    """Product submitted by a vendor, before it is written to the catalog"""

    vendor_id: int = Field(description="Id of the vendor user that owns the product")
    name: str = Field(description="Product name")
    description: str = Field(description="Product description")
    category: str = Field(description="Catalog category")
    price: float = Field(ge=0, description="Unit price, never negative")
    stock_quantity: int = Field(default=0, ge=0, description="Units in stock")
    tags: str = Field(default="", description="Comma separated tags")
    image_url: str = Field(default=PLACEHOLDER_IMAGE_URL, description="Image URL")

    @field_validator("name", "description", "category")
    @classmethod
    def _non_blank(cls, value: str) -> str:
        return _require_text(value)  # type: ignore[return-value]

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, value: Any) -> Any:
        return "" if value is None else _normalize_tags(value)

    @field_validator("image_url", mode="before")
    @classmethod
    def _image_url(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return PLACEHOLDER_IMAGE_URL
        return value

    def to_new_product(self) -> NewProduct:
        return NewProduct(
            vendor_id=self.vendor_id,
            name=self.name,
            description=self.description,
            category=self.category,
            price=self.price,
            stock_quantity=self.stock_quantity,
            tags=self.tags,
            image_url=self.image_url,
        )


class ProductUpdate(BaseModel):
    """Partial edit of an existing product; unset fields are left untouched"""

    name: str | None = None
    description: str | None = None
    category: str | None = None
    price: float | None = Field(default=None, ge=0)
    stock_quantity: int | None = Field(default=None, ge=0)
    tags: str | None = None
    image_url: str | None = None

    @field_validator("name", "description", "category")
    @classmethod
    def _non_blank(cls, value: str | None) -> str | None:
        return _require_text(value)

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, value: Any) -> Any:
        return _normalize_tags(value)

    def changed_fields(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude_none=True)

    def touches_embedding(self) -> bool:
        return bool(EMBEDDED_FIELDS & set(self.changed_fields()))
