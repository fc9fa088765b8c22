"""Pydantic models for unclaimed property records."""
from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class GeocodingStatus(str, Enum):
    """Lifecycle of a record inside the batch geocoder. Unset is ``None``."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class PropertyRecord(BaseModel):
    """A single row of the ``unclaimed_properties`` table."""

    id: str
    property_id: str
    property_type: str
    cash_reported: float = 0.0
    shares_reported: float = 0.0
    name_of_securities_reported: Optional[str] = None
    no_of_owners: Optional[str] = None
    owner_name: str
    owner_street_1: Optional[str] = None
    owner_street_2: Optional[str] = None
    owner_street_3: Optional[str] = None
    owner_city: Optional[str] = None
    owner_state: Optional[str] = None
    owner_zip: Optional[str] = None
    owner_country_code: Optional[str] = None
    current_cash_balance: float = 0.0
    number_of_pending_claims: int = 0
    number_of_paid_claims: int = 0
    holder_name: Optional[str] = None
    holder_street_1: Optional[str] = None
    holder_street_2: Optional[str] = None
    holder_street_3: Optional[str] = None
    holder_city: Optional[str] = None
    holder_state: Optional[str] = None
    holder_zip: Optional[str] = None
    cusip: Optional[str] = None
    owner_latitude: Optional[float] = None
    owner_longitude: Optional[float] = None
    holder_latitude: Optional[float] = None
    holder_longitude: Optional[float] = None
    geocoded_at: Optional[str] = None
    geocoding_status: Optional[GeocodingStatus] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def has_owner_coordinates(self) -> bool:
        return self.owner_latitude is not None and self.owner_longitude is not None

    def has_holder_coordinates(self) -> bool:
        return self.holder_latitude is not None and self.holder_longitude is not None


class SearchFilters(BaseModel):
    """Search form criteria; blank values are ignored."""

    owner_name: str = ""
    owner_city: str = ""
    owner_state: str = ""
    property_type: str = ""
    holder_name: str = ""
    min_amount: Optional[float] = Field(default=None, description="Lower bound on current cash balance")
    max_amount: Optional[float] = Field(default=None, description="Upper bound on current cash balance")

    def text_filters(self) -> dict[str, str]:
        """Return the non-blank substring filters keyed by column."""
        columns = {
            "owner_name": self.owner_name,
            "owner_city": self.owner_city,
            "owner_state": self.owner_state,
            "property_type": self.property_type,
            "holder_name": self.holder_name,
        }
        return {column: value.strip() for column, value in columns.items() if value and value.strip()}
