"""Derive canonical university columns from validated block content.

Derivations omit an output whenever an optional input is missing. Lookups
against external collaborators (geocoding, climate, airports, media) never
abort a write: a failure is logged, counted and the field is left unset.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Awaitable, Optional, TypeVar

from pydantic.alias_generators import to_camel

from app.obs import metrics
from app.profiles.domain.lookups import (
    AirportLookup,
    CityAirportLookup,
    ClimateClassifier,
    DeterministicGeocoder,
    Geocoder,
    InMemoryMediaResolver,
    MediaResolver,
    ThresholdClimateClassifier,
)
from app.profiles.domain.payloads import (
    AdmissionsContent,
    BlockContent,
    CostBreakdownContent,
    FinancialAidContent,
    GeographicContent,
    ImageShowcaseContent,
    InstitutionalContent,
    OutcomeContent,
    StudentBodyContent,
    VideoEmbedContent,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class DerivationLookups:
    geocoder: Geocoder = field(default_factory=DeterministicGeocoder)
    climate: ClimateClassifier = field(default_factory=ThresholdClimateClassifier)
    airports: AirportLookup = field(default_factory=CityAirportLookup)
    media: MediaResolver = field(default_factory=InMemoryMediaResolver)


def round_half_up(value: float, places: int = 0) -> float:
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def to_currency(value: float) -> int:
    return int(round_half_up(value))


def _mean(low: float, high: float) -> float:
    return (low + high) / 2


def _copy_present(content: BlockContent, names: tuple[str, ...], out: dict[str, Any]) -> None:
    for name in names:
        value = getattr(content, name)
        if value is not None:
            out[name] = value


async def _guarded(lookup: str, call: Awaitable[Optional[T]]) -> Optional[T]:
    try:
        return await call
    except Exception:
        metrics.inc_lookup_failure(lookup)
        logger.warning("derivation_lookup_failed", extra={"lookup": lookup}, exc_info=True)
        return None


def derive_admissions(content: AdmissionsContent) -> dict[str, Any]:
    out: dict[str, Any] = {}
    applications = content.total_applications
    accepted = content.total_accepted
    if applications is not None and accepted is not None and applications > 0:
        out["acceptance_rate"] = accepted / applications

    sat = (content.sat_math_25, content.sat_math_75, content.sat_verbal_25, content.sat_verbal_75)
    if all(value is not None for value in sat):
        math_mid = _mean(content.sat_math_25, content.sat_math_75)
        verbal_mid = _mean(content.sat_verbal_25, content.sat_verbal_75)
        out["avg_sat_score"] = int(round_half_up(math_mid + verbal_mid))

    if content.act_composite_25 is not None and content.act_composite_75 is not None:
        out["avg_act_score"] = int(round_half_up(_mean(content.act_composite_25, content.act_composite_75)))

    _copy_present(
        content,
        (
            "min_gpa",
            "avg_gpa",
            "sat_math_25",
            "sat_math_75",
            "sat_verbal_25",
            "sat_verbal_75",
            "act_composite_25",
            "act_composite_75",
        ),
        out,
    )
    return out


def derive_financials(content: CostBreakdownContent) -> dict[str, Any]:
    out: dict[str, Any] = {}
    fees = content.fees_and_insurance or 0
    books = content.books_and_supplies_estimate
    misc = content.misc_personal_estimate or 0

    out_state: Optional[int] = None
    if content.in_state_tuition is not None:
        base = content.in_state_tuition
        out["tuition_in_state"] = to_currency(base + fees)
        out_state = to_currency(base + (content.out_state_tuition_premium or 0) + fees)
        out["tuition_out_state"] = out_state
        out["tuition_international"] = out_state

    room_and_board: Optional[int] = None
    if content.on_campus_housing is not None or content.meal_plan_cost is not None:
        room_and_board = to_currency((content.on_campus_housing or 0) + (content.meal_plan_cost or 0))
        out["room_and_board"] = room_and_board

    if books is not None:
        out["books_and_supplies"] = to_currency(books)

    if out_state is not None and room_and_board is not None:
        out["cost_of_living"] = to_currency(out_state + room_and_board + (books or 0) + misc)
    return out


def derive_financial_aid(content: FinancialAidContent) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for name in ("tuition_in_state", "tuition_out_state", "average_net_price"):
        value = getattr(content, name)
        if value is not None:
            out[name] = to_currency(value)
    if content.percent_receiving_aid is not None:
        out["percent_receiving_aid"] = content.percent_receiving_aid
    return out


async def derive_geography(content: GeographicContent, lookups: DerivationLookups) -> dict[str, Any]:
    out: dict[str, Any] = {
        "address": content.address,
        "city": content.city,
        "country": content.country,
    }
    _copy_present(content, ("state", "zip_code", "campus_size_acres"), out)
    if content.state:
        out["region"] = content.state

    coordinates = await _guarded(
        "geocoder",
        lookups.geocoder.resolve(
            content.address,
            city=content.city,
            state=content.state,
            country=content.country,
        ),
    )
    if coordinates is not None:
        out["latitude"] = coordinates.latitude
        out["longitude"] = coordinates.longitude
        zone = await _guarded("climate", lookups.climate.zone_for(coordinates.latitude))
        if zone:
            out["climate_zone"] = zone

    if content.nearest_airport_code:
        out["nearest_airport"] = content.nearest_airport_code.upper()
    else:
        airport = await _guarded("airport", lookups.airports.airport_for(content.city))
        if airport:
            out["nearest_airport"] = airport
    return out


def derive_outcomes(content: OutcomeContent) -> dict[str, Any]:
    # Return on investment is produced by the ROI sync job, never here.
    out: dict[str, Any] = {}
    _copy_present(content, ("graduation_rate", "retention_rate", "employment_rate"), out)
    if content.average_starting_salary is not None:
        out["average_starting_salary"] = to_currency(content.average_starting_salary)
    return out


async def resolve_media_url(media_id: str, lookups: DerivationLookups) -> Optional[str]:
    url = await _guarded("media", lookups.media.url_for(media_id))
    if not url:
        logger.warning("media_unresolved", extra={"media_id": media_id})
    return url


async def derive_institutional(content: InstitutionalContent, lookups: DerivationLookups) -> dict[str, Any]:
    out: dict[str, Any] = {}
    _copy_present(
        content,
        (
            "name",
            "slug",
            "website_url",
            "logo_url",
            "logo_media_id",
            "hero_image_url",
            "hero_image_media_id",
            "type",
            "classification",
            "setting",
        ),
        out,
    )
    for media_field, url_field in (("logo_media_id", "logo_url"), ("hero_image_media_id", "hero_image_url")):
        media_id = getattr(content, media_field)
        if not media_id:
            continue
        url = await resolve_media_url(media_id, lookups)
        if url:
            out[url_field] = url
    return out


def derive_student_body(content: StudentBodyContent) -> dict[str, Any]:
    out: dict[str, Any] = {}
    _copy_present(
        content,
        ("student_population", "percent_male", "percent_female", "diversity_score", "student_faculty_ratio"),
        out,
    )
    return out


async def derive(content: BlockContent, lookups: DerivationLookups) -> dict[str, Any]:
    """Compute the canonical column values written by ``content``.

    Soft and essential block content derives nothing.
    """
    if isinstance(content, AdmissionsContent):
        return derive_admissions(content)
    if isinstance(content, CostBreakdownContent):
        return derive_financials(content)
    if isinstance(content, FinancialAidContent):
        return derive_financial_aid(content)
    if isinstance(content, GeographicContent):
        return await derive_geography(content, lookups)
    if isinstance(content, OutcomeContent):
        return derive_outcomes(content)
    if isinstance(content, InstitutionalContent):
        return await derive_institutional(content, lookups)
    if isinstance(content, StudentBodyContent):
        return derive_student_body(content)
    return {}


async def enrich_soft_media(content: BlockContent, raw_data: dict[str, Any], lookups: DerivationLookups) -> dict[str, Any]:
    """Attach resolved URLs to media-backed soft blocks."""
    targets = {ImageShowcaseContent: "image_url", VideoEmbedContent: "video_url"}
    url_field = targets.get(type(content))
    media_id = getattr(content, "media_id", None)
    if url_field is None or not media_id:
        return raw_data
    url = await resolve_media_url(media_id, lookups)
    if not url:
        return raw_data
    enriched = dict(raw_data)
    enriched[to_camel(url_field) if "mediaId" in raw_data else url_field] = url
    return enriched
