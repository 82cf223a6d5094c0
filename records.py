from typing import Annotated, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, field_validator


def _require_absolute(value: str) -> str:
    if not isinstance(value, str) or not (value.startswith("http://") or value.startswith("https://")):
        raise ValueError(f"expected an absolute http(s) URL, got {value!r}")
    return value


AbsoluteUrl = Annotated[str, AfterValidator(_require_absolute)]


class CategoryRecord(BaseModel):
    """Top-level product category from the products landing page."""
    model_config = ConfigDict(frozen=True)

    name: str
    image_url: Optional[str] = None
    description: Optional[str] = None
    link: AbsoluteUrl


class SubcategoryRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    image_url: Optional[str] = None
    link: AbsoluteUrl
    parent_category_name: str


class ProductSummaryRecord(BaseModel):
    """Listing-card view of a product; the hand-off unit to the detail stage.

    Parent names are copied from the originating category/subcategory when the
    record is created and are never re-derived later.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    image_url: Optional[str] = None
    short_description: Optional[str] = None
    link: AbsoluteUrl
    parent_category_name: str
    parent_subcategory_name: str


class SpecRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    spec_name: str
    spec_value: str


class SpecBlock(BaseModel):
    model_config = ConfigDict(frozen=True)

    table_title: str
    rows: List[SpecRow] = []


class ProductDetailRecord(BaseModel):
    """Canonical output schema for a product detail page.

    - `images` keeps first-seen order with the primary image first, no repeats
    - `specifications` follows document order of tables and rows
    - `technical_specifications` is the same content rendered as HTML
    """
    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    identifier: Optional[str] = None
    images: List[str] = []
    subtitle: Optional[str] = None
    description: Optional[str] = None
    canonical_link: AbsoluteUrl
    specifications: List[SpecBlock] = []
    technical_specifications: str = ""
    parent_category_name: str
    parent_subcategory_name: str

    @field_validator("images")
    @classmethod
    def _dedup_images(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(value))


class FailureRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    link: AbsoluteUrl
    error_message: str
