"""Read access to brand_info rows."""

from citation_sync.db.helpers import fetch_one
from citation_sync.infrastructure.observability.logging import get_logger
from citation_sync.models.domain.location_domain import BrandRecord

logger = get_logger(__name__)


class BrandRepository:
    SELECT_COLUMNS = """
        domain_id, business_name, street, city, state, zip, country, phone,
        email, website, description, categories, hours, social_links,
        logo_url, image_urls
    """

    @classmethod
    def _row_to_brand(cls, row: dict | None) -> BrandRecord | None:
        if not row:
            return None
        # Closed days are stored as null entries
        hours = row.get("hours") or None
        if hours:
            hours = {day: window for day, window in hours.items() if window}
        return BrandRecord(**{**row, "hours": hours or None})

    @classmethod
    async def get_brand(cls, domain_id: str) -> BrandRecord | None:
        query = f"SELECT {cls.SELECT_COLUMNS} FROM brand_info WHERE domain_id = %s"
        brand = cls._row_to_brand(await fetch_one(query, (domain_id,)))
        if brand is None:
            logger.debug("No brand info for domain", domain_id=domain_id)
        return brand
