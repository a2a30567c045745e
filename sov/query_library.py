"""
sov/query_library.py

Deterministic reference query library.

Builds the set of questions a local customer plausibly asks about a
business from category, city and competitor templates. The same inputs
always produce the same queries in the same order; the library seeds new
locations and is the baseline the gap detector compares tracked queries
against.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Sequence

from sov.models import Tenant

HOSPITALITY_CATEGORIES = frozenset(
    {
        "restaurant",
        "bar",
        "lounge",
        "hookah",
        "cafe",
        "bistro",
        "pub",
        "grill",
        "diner",
        "eatery",
        "steakhouse",
        "pizzeria",
        "sushi",
        "thai",
        "indian",
        "mexican",
        "italian",
        "bbq",
        "seafood",
        "brunch",
        "bakery",
        "food",
        "dining",
    }
)

DISCOVERY_TEMPLATES: tuple[str, ...] = (
    "best {category} in {city} {state}",
    "top {category} near {city}",
    "best {category} {city}",
    "{category} recommendations {city} {state}",
)

NEAR_ME_TEMPLATES: tuple[str, ...] = (
    "{category} near me {city}",
    "best {category} near me",
    "{category} open now {city}",
)

OCCASION_TEMPLATES: tuple[str, ...] = (
    "best place for date night {city}",
    "birthday dinner {city}",
    "bachelorette party venue {city}",
    "girls night out {city}",
    "romantic restaurant {city}",
)

COMPARISON_TEMPLATE = "best {category} in {city}: {business} vs {competitor}"

MAX_COMPARISON_COMPETITORS = 3

DEFAULT_CITY = "local area"
DEFAULT_STATE = ""
DEFAULT_CATEGORY = "restaurant"


@dataclass(frozen=True)
class LibraryQuery:
    query_text: str
    category: str
    priority: int


def normalize_query_text(text: str) -> str:
    """Trim, case-fold and collapse whitespace so equivalent queries compare equal."""
    return re.sub(r"\s+", " ", text).strip().casefold()


def _render(template: str, **values: str) -> str:
    return re.sub(r"\s+", " ", template.format(**values)).strip()


def is_hospitality(categories: Sequence[str]) -> bool:
    return any(
        word in HOSPITALITY_CATEGORIES
        for category in categories
        for word in re.split(r"[\s_/-]+", category.lower())
    )


def build_reference_library(
    *,
    business_name: str,
    city: str | None = None,
    state: str | None = None,
    categories: Sequence[str] = (),
    competitors: Sequence[str] = (),
) -> list[LibraryQuery]:
    """Generate the reference query set for a location.

    Args:
        business_name: The business being tracked.
        city: City name; defaults to "local area".
        state: State or region; may be empty.
        categories: Business categories; the first one drives templates and
            defaults to "restaurant". Occasion queries are generated only for
            hospitality businesses.
        competitors: Known competitor names; at most three get comparison
            queries.

    Returns:
        Queries in discovery, near_me, occasion, comparison order with
        duplicates (by normalized text) removed.
    """
    city = (city or "").strip() or DEFAULT_CITY
    state = (state or "").strip() or DEFAULT_STATE
    category = next((c.strip().lower() for c in categories if c and c.strip()), DEFAULT_CATEGORY)
    values = {"category": category, "city": city, "state": state}

    queries: list[LibraryQuery] = []
    for index, template in enumerate(DISCOVERY_TEMPLATES):
        queries.append(LibraryQuery(_render(template, **values), "discovery", index + 1))
    for index, template in enumerate(NEAR_ME_TEMPLATES):
        queries.append(LibraryQuery(_render(template, **values), "near_me", index + 1))
    if is_hospitality(categories or (DEFAULT_CATEGORY,)):
        for index, template in enumerate(OCCASION_TEMPLATES):
            queries.append(LibraryQuery(_render(template, **values), "occasion", index + 1))
    for competitor in [c for c in competitors if c and c.strip()][:MAX_COMPARISON_COMPETITORS]:
        text = _render(
            COMPARISON_TEMPLATE,
            business=business_name.strip(),
            competitor=competitor.strip(),
            **values,
        )
        queries.append(LibraryQuery(text, "comparison", 1))

    seen: set[str] = set()
    unique: list[LibraryQuery] = []
    for query in queries:
        key = normalize_query_text(query.query_text)
        if key in seen:
            continue
        seen.add(key)
        unique.append(query)
    return unique


def build_seed_queries(
    tenant: Tenant,
    existing: Sequence[str] = (),
    *,
    limit: int | None = None,
) -> list[LibraryQuery]:
    """Reference queries for a tenant that are not tracked yet.

    ``existing`` holds already tracked query texts; they are compared
    after normalization. Lower priority numbers come first within the
    library's category order.
    """
    known = {normalize_query_text(text) for text in existing}
    library = build_reference_library(
        business_name=tenant.business_name,
        city=tenant.city,
        state=tenant.state,
        categories=tenant.categories,
        competitors=tenant.competitors,
    )
    seeds = [query for query in library if normalize_query_text(query.query_text) not in known]
    if limit is not None:
        seeds = seeds[: max(0, limit)]
    return seeds
