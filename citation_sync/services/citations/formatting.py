"""
Formatting helpers shared by the citation adapters.

Everything here is pure: validation, phone canonicalization, per-provider
hours conversion, brand normalization and the change-detection hash.
"""

import hashlib
import json
import re

from citation_sync.models.domain.citation_domain import DeleteResult
from citation_sync.models.domain.location_domain import (
    WEEKDAYS,
    BrandRecord,
    DayHours,
    NormalizedLocation,
)

HASH_LENGTH = 16

REQUIRED_FIELDS = (
    ("business_name", "Business name is required"),
    ("street", "Street address is required"),
    ("city", "City is required"),
    ("state", "State is required"),
    ("zip", "ZIP code is required"),
    ("country", "Country is required"),
)

_NON_DIGITS = re.compile(r"\D")

FOURSQUARE_DAYS = {day: index for index, day in enumerate(WEEKDAYS, start=1)}
SHORT_DAYS = {day: day[:3] for day in WEEKDAYS}


def validate_required(location: NormalizedLocation) -> list[str]:
    """Field-level errors for missing required fields, empty when valid."""
    return [message for field, message in REQUIRED_FIELDS if not getattr(location, field)]


def validation_error(location: NormalizedLocation) -> str | None:
    errors = validate_required(location)
    return ", ".join(errors) if errors else None


def format_phone(phone: str | None) -> str | None:
    """
    Best-effort E.164 for US numbers.

    10 digits become +1XXXXXXXXXX, 11 digits with a leading 1 become +1XXXXXXXXXX;
    anything else is returned unchanged.
    """
    if not phone:
        return None
    digits = _NON_DIGITS.sub("", phone)
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    return phone


def _known_days(hours: dict[str, DayHours] | None) -> list[tuple[str, DayHours]]:
    if not hours:
        return []
    return [(day.lower(), times) for day, times in hours.items() if day.lower() in WEEKDAYS]


def _split_time(value: str) -> tuple[int, int]:
    parts = value.split(":")
    try:
        hours = int(parts[0]) if parts[0] else 0
    except ValueError:
        hours = 0
    try:
        minutes = int(parts[1]) if len(parts) > 1 and parts[1] else 0
    except ValueError:
        minutes = 0
    return hours, minutes


def foursquare_hours(hours: dict[str, DayHours] | None) -> list[dict] | None:
    """Day numbers 1 (Monday) .. 7 (Sunday) with HHMM times."""
    if not hours:
        return None
    return [
        {
            "day": FOURSQUARE_DAYS[day],
            "open": times.open.replace(":", ""),
            "close": times.close.replace(":", ""),
        }
        for day, times in _known_days(hours)
    ]


def google_hours(hours: dict[str, DayHours] | None) -> dict | None:
    periods = []
    for day, times in _known_days(hours):
        open_hours, open_minutes = _split_time(times.open)
        close_hours, close_minutes = _split_time(times.close)
        periods.append(
            {
                "openDay": day.upper(),
                "openTime": {"hours": open_hours, "minutes": open_minutes},
                "closeDay": day.upper(),
                "closeTime": {"hours": close_hours, "minutes": close_minutes},
            }
        )
    return {"periods": periods} if periods else None


def facebook_hours(hours: dict[str, DayHours] | None) -> dict[str, str] | None:
    """Graph API page hours: mon_1_open / mon_1_close keys."""
    fb_hours = {}
    for day, times in _known_days(hours):
        fb_hours[f"{SHORT_DAYS[day]}_1_open"] = times.open
        fb_hours[f"{SHORT_DAYS[day]}_1_close"] = times.close
    return fb_hours or None


def hours_text(hours: dict[str, DayHours] | None) -> str | None:
    """Free text such as "Mon: 09:00 - 17:00, Tue: 09:00 - 17:00", Monday first."""
    if not hours:
        return None
    by_day = dict(_known_days(hours))
    return ", ".join(
        f"{SHORT_DAYS[day].capitalize()}: {by_day[day].open} - {by_day[day].close}"
        for day in WEEKDAYS
        if day in by_day
    )


def lowercase_hours(hours: dict[str, DayHours] | None) -> dict[str, dict] | None:
    if not hours:
        return None
    return {day.lower(): {"open": times.open, "close": times.close} for day, times in hours.items()}


def plain_hours(hours: dict[str, DayHours] | None) -> dict[str, dict] | None:
    if not hours:
        return None
    return {day: times.model_dump() for day, times in hours.items()}


def social_profiles(location: NormalizedLocation, platforms: tuple[str, ...]) -> dict | None:
    if not location.social_links:
        return None
    return {platform: location.social(platform) for platform in platforms}


def compact(payload: dict) -> dict:
    """Drop None values so optional fields are omitted from the wire payload."""
    return {key: value for key, value in payload.items() if value is not None}


def normalize_brand(brand: BrandRecord) -> NormalizedLocation:
    """Map a brand_info record onto the provider-agnostic listing. Country defaults to US."""
    return NormalizedLocation(
        business_name=brand.business_name,
        street=brand.street or "",
        city=brand.city or "",
        state=brand.state or "",
        zip=brand.zip or "",
        country=brand.country or "US",
        phone=brand.phone or None,
        email=brand.email or None,
        website=brand.website or None,
        description=brand.description or None,
        categories=brand.categories or None,
        hours=brand.hours or None,
        social_links=brand.social_links or None,
        logo_url=brand.logo_url or None,
        image_urls=brand.image_urls or None,
    )


def hash_location(location: NormalizedLocation) -> str:
    """sha256 over canonical JSON (sorted keys, None omitted), truncated to 16 hex chars."""
    canonical = json.dumps(
        location.model_dump(exclude_none=True),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:HASH_LENGTH]


def hash_brand(brand: BrandRecord) -> str:
    return hash_location(normalize_brand(brand))


def unsupported_delete(provider_name: str) -> DeleteResult:
    return DeleteResult(success=False, error=f"Delete not supported for {provider_name}")
