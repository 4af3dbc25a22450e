# models/domain/location_domain.py
"""
Listing domain models.

BrandRecord mirrors a brand_info row as stored for a domain; NormalizedLocation
is the provider-agnostic payload every citation adapter consumes.
"""

from pydantic import BaseModel, ConfigDict, field_validator

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


class DayHours(BaseModel):
    """Opening window for one weekday, "HH:MM" 24h local time."""

    model_config = ConfigDict(frozen=True)

    open: str
    close: str


class BrandRecord(BaseModel):
    """Brand data for a domain (brand_info row). Only business_name is mandatory."""

    domain_id: str
    business_name: str
    street: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    country: str | None = None
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    description: str | None = None
    categories: list[str] | None = None
    hours: dict[str, DayHours] | None = None
    social_links: dict[str, str] | None = None
    logo_url: str | None = None
    image_urls: list[str] | None = None

    @field_validator("domain_id", mode="before")
    @classmethod
    def _coerce_domain_id(cls, value):
        return str(value) if value is not None else value


class NormalizedLocation(BaseModel):
    """
    Provider-agnostic listing payload.

    Required NAP fields default to empty strings so an incomplete brand can
    still be normalized; validate_required() reports what is missing.
    """

    business_name: str
    street: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    country: str = ""
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    description: str | None = None
    categories: list[str] | None = None
    hours: dict[str, DayHours] | None = None
    social_links: dict[str, str] | None = None
    logo_url: str | None = None
    image_urls: list[str] | None = None

    def social(self, platform: str) -> str | None:
        """Social profile URL for a platform, if one is set."""
        if not self.social_links:
            return None
        return self.social_links.get(platform)
