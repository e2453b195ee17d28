from __future__ import annotations

import pytest

from app.profiles.domain.errors import ProfileValidationError
from app.profiles.domain.payloads import (
    AdmissionsContent,
    SoftBlockContent,
    parse_content,
    validate_submission,
)


def test_envelope_accepts_camel_case_keys() -> None:
    submission = validate_submission(
        {
            "blockType": "admissions_range_meter",
            "universityId": "u-1",
            "title": "Admissions",
            "data": {"totalApplications": 10, "totalAccepted": 5},
        }
    )
    content = parse_content(submission.block_type, submission.data)

    assert submission.block_type == "admissions_range_meter"
    assert submission.university_id == "u-1"
    assert isinstance(content, AdmissionsContent)
    assert content.total_accepted == 5


def test_accepted_cannot_exceed_applications() -> None:
    with pytest.raises(ProfileValidationError) as excinfo:
        parse_content("admissions_range_meter", {"totalApplications": 10, "totalAccepted": 11})

    assert [error["field"] for error in excinfo.value.errors] == ["data.totalAccepted"]


def test_content_accepts_snake_case_keys() -> None:
    content = parse_content("admissions_range_meter", {"total_applications": 10, "total_accepted": 2})

    assert content.total_applications == 10


def test_out_of_range_scores_are_rejected_per_field() -> None:
    with pytest.raises(ProfileValidationError) as excinfo:
        parse_content("admissions_range_meter", {"satMath25": 900})

    errors = excinfo.value.errors
    assert errors
    assert all(error["field"].startswith("data.") for error in errors)
    assert any("sat" in error["field"].lower() for error in errors)


def test_canonical_content_forbids_unknown_keys() -> None:
    with pytest.raises(ProfileValidationError):
        parse_content("outcome_metrics", {"graduationRate": 0.9, "roiPercentage": 12})


def test_missing_envelope_fields_fail() -> None:
    with pytest.raises(ProfileValidationError) as excinfo:
        validate_submission({"data": {}})

    assert len(excinfo.value.errors) >= 2


def test_unknown_soft_block_type_is_free_form() -> None:
    content = parse_content("campus_tour_widget", {"stops": ["library", "gym"]})

    assert isinstance(content, SoftBlockContent)


def test_geography_requires_address_and_city() -> None:
    with pytest.raises(ProfileValidationError) as excinfo:
        parse_content("geographic_physical", {"city": "X"})

    fields = {error["field"] for error in excinfo.value.errors}
    assert "data.address" in fields
