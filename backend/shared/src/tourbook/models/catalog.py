"""Catalog entry model."""

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CatalogEntry(BaseModel):
    """A sellable tour.

    Prices are integers in the catalog reference currency (COP by default).
    The catalog is the only source of price and display title used to build
    a payment session; client-submitted values are never trusted.
    """

    model_config = ConfigDict(frozen=True)

    id: str | None = Field(default=None, description="Stable tour ID", examples=["t_001"])
    slug: str = Field(
        ...,
        min_length=1,
        description="Unique, immutable URL slug",
        examples=["bogota-coffee-culture"],
    )
    title: str = Field(..., min_length=1, description="Display title")
    price: int = Field(..., ge=0, description="Price per person in the catalog currency")
    duration_hours: float | None = Field(default=None, gt=0)
    city: str | None = None
    tags: frozenset[str] = Field(default_factory=frozenset)
    summary: str | None = None

    @field_validator("slug")
    @classmethod
    def normalize_slug(cls, v: str) -> str:
        return v.strip().lower()

    @property
    def title_lower(self) -> str:
        return self.title.strip().lower()
