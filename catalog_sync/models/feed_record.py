"""Pydantic model for records streamed from the supplier feed."""
from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Optional


class FeedRecord(BaseModel):
    """One product record read from the supplier feed.

    Exists only for a single parse-and-decide cycle and is never persisted
    as-is. An empty external_id or a missing price is kept here and turned
    into a "skipped" decision downstream, so every record read from the feed
    is accounted for.
    """

    external_id: str = Field(
        default="",
        description="Supplier's own product key"
    )
    price: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Supplier price, None when missing or unparseable"
    )
    quantity: Optional[int] = Field(
        default=None,
        description="Supplier quantity, when the feed carries one"
    )
    position: int = Field(
        default=0,
        ge=0,
        description="0-based ordinal of the record in document order"
    )

    @field_validator('external_id')
    @classmethod
    def strip_external_id(cls, v: str) -> str:
        """Strip surrounding whitespace from the identifier."""
        return v.strip()

    model_config = {
        "json_schema_extra": {
            "example": {
                "external_id": "SKU-1",
                "price": "19.99",
                "quantity": 4,
                "position": 0,
            }
        }
    }
