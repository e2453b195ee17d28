from __future__ import annotations

import pytest

from app.obs import metrics
from app.profiles.domain.derivation import (
    DerivationLookups,
    derive,
    derive_admissions,
    derive_financials,
    enrich_soft_media,
    round_half_up,
)
from app.profiles.domain.lookups import InMemoryMediaResolver
from app.profiles.domain.payloads import parse_content


class _BrokenGeocoder:
    async def resolve(self, address, *, city, state, country):
        raise ConnectionError("geocoder offline")


def test_round_half_up_never_rounds_to_even() -> None:
    assert round_half_up(0.00005, 4) == 0.0001
    assert round_half_up(2.5) == 3.0
    assert round_half_up(0.125, 2) == 0.13


def test_admissions_derivation() -> None:
    content = parse_content(
        "admissions_range_meter",
        {
            "totalApplications": 1000,
            "totalAccepted": 150,
            "satMath25": 650,
            "satMath75": 750,
            "satVerbal25": 600,
            "satVerbal75": 800,
            "actComposite25": 28,
            "actComposite75": 32,
        },
    )

    derived = derive_admissions(content)

    assert derived["acceptance_rate"] == 0.15
    assert derived["avg_sat_score"] == 1400
    assert derived["avg_act_score"] == 30
    assert derived["sat_math_25"] == 650

    third = derive_admissions(parse_content("admissions_range_meter", {"totalApplications": 3, "totalAccepted": 1}))
    assert third["acceptance_rate"] == 1 / 3


def test_admissions_omits_rate_without_applications() -> None:
    content = parse_content("admissions_range_meter", {"totalApplications": 0, "totalAccepted": 0, "minGpa": 3.1})

    derived = derive_admissions(content)

    assert "acceptance_rate" not in derived
    assert "avg_sat_score" not in derived
    assert derived == {"min_gpa": 3.1}


def test_financial_derivation() -> None:
    content = parse_content(
        "cost_breakdown_chart",
        {
            "inStateTuition": 10000,
            "outStateTuitionPremium": 20000,
            "feesAndInsurance": 2000,
            "onCampusHousing": 8000,
            "mealPlanCost": 4000,
            "booksAndSuppliesEstimate": 1000,
            "miscPersonalEstimate": 500,
        },
    )

    derived = derive_financials(content)

    assert derived["tuition_in_state"] == 12000
    assert derived["tuition_out_state"] == 32000
    assert derived["tuition_international"] == 32000
    assert derived["room_and_board"] == 12000
    assert derived["books_and_supplies"] == 1000
    assert derived["cost_of_living"] == 45500


def test_financials_without_tuition_skip_dependent_totals() -> None:
    content = parse_content("cost_breakdown_chart", {"onCampusHousing": 7999.5})

    derived = derive_financials(content)

    assert derived == {"room_and_board": 8000}


@pytest.mark.asyncio
async def test_geography_uses_lookups() -> None:
    content = parse_content(
        "geographic_physical",
        {"address": "1 Main Street", "city": "Boston", "state": "MA", "country": "USA"},
    )

    derived = await derive(content, DerivationLookups())

    assert derived["latitude"] == pytest.approx(34.06)
    assert derived["longitude"] == pytest.approx(-117.94)
    assert derived["climate_zone"] == "SUBTROPICAL"
    assert derived["nearest_airport"] == "BOSI"
    assert derived["region"] == "MA"


@pytest.mark.asyncio
async def test_geography_airport_override_is_uppercased() -> None:
    content = parse_content(
        "geographic_physical",
        {"address": "1 Main Street", "city": "Boston", "country": "USA", "nearestAirportCode": "bos"},
    )

    derived = await derive(content, DerivationLookups())

    assert derived["nearest_airport"] == "BOS"
    assert "region" not in derived


@pytest.mark.asyncio
async def test_geocoder_failure_leaves_coordinates_unset() -> None:
    before = metrics.DERIVATION_LOOKUP_FAILURES.labels(lookup="geocoder")._value.get()
    content = parse_content(
        "geographic_physical",
        {"address": "1 Main Street", "city": "Boston", "country": "USA"},
    )

    derived = await derive(content, DerivationLookups(geocoder=_BrokenGeocoder()))

    assert derived["address"] == "1 Main Street"
    assert "latitude" not in derived
    assert "climate_zone" not in derived
    after = metrics.DERIVATION_LOOKUP_FAILURES.labels(lookup="geocoder")._value.get()
    assert after == before + 1


@pytest.mark.asyncio
async def test_institutional_media_ids_resolve_to_urls() -> None:
    lookups = DerivationLookups(media=InMemoryMediaResolver({"logo-1": "https://cdn.example/logo-1.png"}))
    content = parse_content(
        "institutional_profile",
        {"name": "Example State", "logoMediaId": "logo-1", "heroImageMediaId": "missing"},
    )

    derived = await derive(content, lookups)

    assert derived["logo_url"] == "https://cdn.example/logo-1.png"
    assert "hero_image_url" not in derived
    assert derived["hero_image_media_id"] == "missing"


@pytest.mark.asyncio
async def test_soft_content_derives_nothing() -> None:
    content = parse_content("faq_accordion", {"question": "Is there parking?", "answer": "Yes, lots."})

    assert await derive(content, DerivationLookups()) == {}


@pytest.mark.asyncio
async def test_soft_media_enrichment_keeps_caller_key_style() -> None:
    lookups = DerivationLookups(media=InMemoryMediaResolver({"m1": "https://cdn.example/m1.png"}))
    raw = {"mediaId": "m1", "caption": "Quad"}
    content = parse_content("image_showcase", raw)

    enriched = await enrich_soft_media(content, raw, lookups)

    assert enriched["imageUrl"] == "https://cdn.example/m1.png"
    assert "imageUrl" not in raw
