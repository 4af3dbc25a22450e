"""
Built-in citation provider catalog, seeded into citation_providers once.

Tier 1 = direct API, 2 = aggregator, 3 = manual / no API,
4 = covered automatically through a tier-2 aggregator.
"""

from citation_sync.models.domain.citation_domain import CitationProvider

PROVIDER_CATALOG: tuple[CitationProvider, ...] = (
    # Tier 1: direct APIs
    CitationProvider(
        slug="foursquare",
        name="Foursquare",
        tier=1,
        auth_method="api_key",
        base_url="https://api.foursquare.com/v3",
        rate_limit_per_minute=500,
        rate_limit_per_day=100000,
        coverage_description="Feeds Snapchat, Uber, 50+ navigation apps",
        documentation_url="https://developer.foursquare.com/",
    ),
    CitationProvider(
        slug="data-axle",
        name="Data Axle",
        tier=1,
        auth_method="api_key",
        base_url="https://api.data-axle.com",
        rate_limit_per_minute=60,
        rate_limit_per_day=5000,
        coverage_description="~95% of search traffic",
        documentation_url="https://developer.data-axle.com/",
    ),
    CitationProvider(
        slug="google-business",
        name="Google Business Profile",
        tier=1,
        auth_method="oauth2",
        base_url="https://mybusinessbusinessinformation.googleapis.com/v1",
        rate_limit_per_minute=60,
        rate_limit_per_day=10000,
        coverage_description="Direct Google/Maps integration",
        documentation_url="https://developers.google.com/my-business",
    ),
    CitationProvider(
        slug="facebook",
        name="Facebook/Meta",
        tier=1,
        auth_method="oauth2",
        base_url="https://graph.facebook.com/v18.0",
        rate_limit_per_minute=200,
        rate_limit_per_day=50000,
        coverage_description="Facebook Places",
        documentation_url="https://developers.facebook.com/docs/pages-api/",
    ),
    CitationProvider(
        slug="brownbook",
        name="Brownbook.net",
        tier=1,
        auth_method="api_key",
        base_url="https://api.brownbook.net",
        rate_limit_per_minute=30,
        rate_limit_per_day=1000,
        coverage_description="Global business directory",
        documentation_url="https://www.brownbook.net/api/",
    ),
    # Tier 2: aggregators
    CitationProvider(
        slug="lde",
        name="Local Data Exchange",
        tier=2,
        auth_method="api_key",
        base_url="https://local-data-exchange.p.rapidapi.com",
        rate_limit_per_minute=100,
        rate_limit_per_day=10000,
        is_aggregator=True,
        coverage_description="130+ directories including Apple, Bing, TomTom, HERE, Yahoo, Uber",
        documentation_url="https://rapidapi.com/lde/api/local-data-exchange",
    ),
    CitationProvider(
        slug="localeze",
        name="Neustar Localeze",
        tier=2,
        auth_method="api_key",
        base_url="https://api.neustarlocaleze.biz",
        rate_limit_per_minute=60,
        rate_limit_per_day=5000,
        is_aggregator=True,
        coverage_description="200+ partners including Google, Apple, Bing, HERE, TomTom",
        documentation_url="https://www.home.neustar/local/",
    ),
    CitationProvider(
        slug="yext",
        name="Yext",
        tier=2,
        auth_method="api_key",
        base_url="https://api.yext.com/v2",
        rate_limit_per_minute=1000,
        rate_limit_per_day=50000,
        is_aggregator=True,
        coverage_description="150+ directories - comprehensive but expensive",
        documentation_url="https://developer.yext.com/",
    ),
    # Tier 3: manual / no public API
    CitationProvider(
        slug="bing-places",
        name="Bing Places",
        tier=3,
        auth_method="none",
        rate_limit_per_minute=0,
        rate_limit_per_day=0,
        requires_credentials=False,
        coverage_description="API in transition - contact partneronbp@microsoft.com",
    ),
    CitationProvider(
        slug="apple-business",
        name="Apple Business Connect",
        tier=3,
        auth_method="none",
        rate_limit_per_minute=0,
        rate_limit_per_day=0,
        requires_credentials=False,
        coverage_description="API only through partners",
    ),
    CitationProvider(
        slug="yelp",
        name="Yelp",
        tier=3,
        auth_method="none",
        rate_limit_per_minute=0,
        rate_limit_per_day=0,
        requires_credentials=False,
        coverage_description="No bulk submission API",
    ),
    CitationProvider(
        slug="yellowpages",
        name="YellowPages",
        tier=3,
        auth_method="none",
        rate_limit_per_minute=0,
        rate_limit_per_day=0,
        requires_credentials=False,
        coverage_description="No bulk submission API",
    ),
    CitationProvider(
        slug="merchantcircle",
        name="MerchantCircle",
        tier=3,
        auth_method="none",
        rate_limit_per_minute=0,
        rate_limit_per_day=0,
        requires_credentials=False,
        coverage_description="No bulk submission API",
    ),
)


def get_catalog_entry(slug: str) -> CitationProvider | None:
    return next((provider for provider in PROVIDER_CATALOG if provider.slug == slug), None)
