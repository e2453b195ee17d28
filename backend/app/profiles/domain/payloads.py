"""Validation schemas for submitted content blocks.

Each canonical block type has its own content model; the derivation engine
dispatches on the model class. Soft block types with a known shape are
validated too, and anything else is accepted as generic structured data.
Keys may be sent either in snake_case or in the camelCase the editor emits.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, ClassVar, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

from app.profiles.domain.errors import ProfileValidationError


class BlockContent(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    block_type: ClassVar[str] = ""


class AdmissionsContent(BlockContent):
    block_type: ClassVar[str] = "admissions_range_meter"

    metric: Literal["gpa", "sat", "act", "acceptance"] = "gpa"
    description: Optional[str] = None
    total_applications: Optional[int] = Field(default=None, ge=0)
    total_accepted: Optional[int] = Field(default=None, ge=0)
    min_gpa: Optional[float] = Field(default=None, ge=0, le=5)
    avg_gpa: Optional[float] = Field(default=None, ge=0, le=5)
    sat_math_25: Optional[int] = Field(default=None, ge=200, le=800)
    sat_math_75: Optional[int] = Field(default=None, ge=200, le=800)
    sat_verbal_25: Optional[int] = Field(default=None, ge=200, le=800)
    sat_verbal_75: Optional[int] = Field(default=None, ge=200, le=800)
    act_composite_25: Optional[int] = Field(default=None, ge=1, le=36)
    act_composite_75: Optional[int] = Field(default=None, ge=1, le=36)

    @field_validator("total_accepted")
    @classmethod
    def _accepted_within_applications(cls, value: Optional[int], info: ValidationInfo) -> Optional[int]:
        applications = info.data.get("total_applications")
        if value is not None and applications is not None and value > applications:
            raise ValueError("cannot exceed totalApplications")
        return value


class CostBreakdownContent(BlockContent):
    block_type: ClassVar[str] = "cost_breakdown_chart"

    description: Optional[str] = None
    in_state_tuition: Optional[float] = Field(default=None, ge=0)
    out_state_tuition_premium: Optional[float] = Field(default=None, ge=0)
    fees_and_insurance: Optional[float] = Field(default=None, ge=0)
    on_campus_housing: Optional[float] = Field(default=None, ge=0)
    meal_plan_cost: Optional[float] = Field(default=None, ge=0)
    books_and_supplies_estimate: Optional[float] = Field(default=None, ge=0)
    misc_personal_estimate: Optional[float] = Field(default=None, ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)


class FinancialAidContent(BlockContent):
    block_type: ClassVar[str] = "financial_aid_wizard"

    description: Optional[str] = None
    tuition_in_state: Optional[float] = Field(default=None, ge=0)
    tuition_out_state: Optional[float] = Field(default=None, ge=0)
    average_net_price: Optional[float] = Field(default=None, ge=0)
    percent_receiving_aid: Optional[float] = Field(default=None, ge=0, le=1)


class GeographicContent(BlockContent):
    block_type: ClassVar[str] = "geographic_physical"

    address: str = Field(min_length=3)
    city: str = Field(min_length=2)
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: str = Field(default="USA", min_length=2)
    campus_size_acres: Optional[int] = Field(default=None, ge=1)
    nearest_airport_code: Optional[str] = Field(default=None, min_length=3, max_length=4)
    show_map: bool = True
    map_zoom_level: Optional[int] = Field(default=None, ge=1, le=20)


class OutcomeContent(BlockContent):
    block_type: ClassVar[str] = "outcome_metrics"

    graduation_rate: Optional[float] = Field(default=None, ge=0, le=1)
    retention_rate: Optional[float] = Field(default=None, ge=0, le=1)
    employment_rate: Optional[float] = Field(default=None, ge=0, le=1)
    average_starting_salary: Optional[int] = Field(default=None, ge=10000)
    post_graduation_report_url: Optional[str] = None
    top_employers: Optional[List[str]] = None
    chart_type: Literal["bar", "gauge"] = "gauge"


class InstitutionalContent(BlockContent):
    block_type: ClassVar[str] = "institutional_profile"

    name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    slug: Optional[str] = Field(default=None, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$", max_length=120)
    website_url: Optional[str] = None
    logo_url: Optional[str] = None
    logo_media_id: Optional[str] = None
    hero_image_url: Optional[str] = None
    hero_image_media_id: Optional[str] = None
    type: Optional[Literal["public", "private", "for_profit"]] = None
    classification: Optional[str] = None
    setting: Optional[Literal["urban", "suburban", "rural"]] = None
    description: Optional[str] = None


class StudentBodyContent(BlockContent):
    block_type: ClassVar[str] = "student_body_profile"

    student_population: Optional[int] = Field(default=None, ge=0)
    percent_male: Optional[float] = Field(default=None, ge=0, le=1)
    percent_female: Optional[float] = Field(default=None, ge=0, le=1)
    diversity_score: Optional[float] = Field(default=None, ge=0, le=1)
    student_faculty_ratio: Optional[float] = Field(default=None, ge=0)


class DeadlineCardContent(BlockContent):
    block_type: ClassVar[str] = "deadline_card"

    label: str = Field(min_length=1)
    deadline: Union[datetime, date]
    description: Optional[str] = None
    show_countdown: bool = True
    icon: Optional[str] = None
    expires_at: Optional[Union[datetime, date]] = None


class AnnouncementBannerContent(BlockContent):
    block_type: ClassVar[str] = "announcement_banner"

    message: str = Field(min_length=5)
    severity: Literal["info", "warning", "success", "error"]
    dismissible: bool = True
    expires_at: Optional[Union[datetime, date]] = None
    action_text: Optional[str] = None
    action_url: Optional[str] = None


class TestimonialQuoteContent(BlockContent):
    block_type: ClassVar[str] = "testimonial_quote"

    quote: str = Field(min_length=10)
    author: str = Field(min_length=2)
    author_title: Optional[str] = None
    avatar_url: Optional[str] = None
    rating: Optional[float] = Field(default=None, ge=1, le=5)


class FaqAccordionContent(BlockContent):
    block_type: ClassVar[str] = "faq_accordion"

    question: str = Field(min_length=5)
    answer: str = Field(min_length=5)
    default_open: bool = False


class ResourceLink(BlockContent):
    id: str
    title: str = Field(min_length=1)
    url: str = Field(min_length=1)
    description: Optional[str] = None
    icon: Optional[str] = None


class LinkListContent(BlockContent):
    block_type: ClassVar[str] = "link_list_resources"

    description: Optional[str] = None
    links: List[ResourceLink] = Field(min_length=1)


class PollOption(BlockContent):
    id: str
    text: str = Field(min_length=1)
    votes: Optional[int] = Field(default=None, ge=0)


class QuickPollContent(BlockContent):
    block_type: ClassVar[str] = "quick_poll_survey"

    question: str = Field(min_length=5)
    options: List[PollOption] = Field(min_length=2)
    allow_multiple: bool = False
    show_results: bool = True


class CallToActionContent(BlockContent):
    block_type: ClassVar[str] = "call_to_action"

    button_text: str = Field(min_length=1)
    url: str = Field(min_length=1)
    description: Optional[str] = None
    style: Literal["primary", "secondary", "ghost", "outline"] = "primary"
    open_in_new_tab: bool = False
    icon: Optional[str] = None


class ImageShowcaseContent(BlockContent):
    model_config = ConfigDict(extra="allow")

    block_type: ClassVar[str] = "image_showcase"

    media_id: Optional[str] = None
    image_url: Optional[str] = None
    caption: Optional[str] = None
    alt_text: Optional[str] = None


class VideoEmbedContent(BlockContent):
    model_config = ConfigDict(extra="allow")

    block_type: ClassVar[str] = "video_embed"

    media_id: Optional[str] = None
    video_url: Optional[str] = None
    caption: Optional[str] = None


class SoftBlockContent(BlockContent):
    """Freeform content for block types without a registered schema."""

    model_config = ConfigDict(extra="allow")


CONTENT_MODELS: dict[str, type[BlockContent]] = {
    model.block_type: model
    for model in (
        AdmissionsContent,
        CostBreakdownContent,
        FinancialAidContent,
        GeographicContent,
        OutcomeContent,
        InstitutionalContent,
        StudentBodyContent,
        DeadlineCardContent,
        AnnouncementBannerContent,
        TestimonialQuoteContent,
        FaqAccordionContent,
        LinkListContent,
        QuickPollContent,
        CallToActionContent,
        ImageShowcaseContent,
        VideoEmbedContent,
    )
}


class BlockSubmission(BaseModel):
    """Envelope shared by every block save."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    block_type: str = Field(min_length=1, max_length=64)
    university_id: str = Field(min_length=1)
    title: str = Field(default="", max_length=255)
    priority: int = 0
    id: Optional[str] = None
    template_id: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)


def _errors_from(exc: ValidationError, *, prefix: str = "") -> list[dict[str, Any]]:
    errors = []
    for item in exc.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        errors.append(
            {
                "field": f"{prefix}{location}" if location else prefix.rstrip(".") or "payload",
                "reason": item.get("msg", "invalid"),
                "type": item.get("type"),
            }
        )
    return errors


def parse_content(block_type: str, data: Mapping[str, Any]) -> BlockContent:
    model = CONTENT_MODELS.get(block_type, SoftBlockContent)
    try:
        return model.model_validate(dict(data))
    except ValidationError as exc:
        raise ProfileValidationError(_errors_from(exc, prefix="data.")) from exc


def validate_submission(payload: Mapping[str, Any]) -> BlockSubmission:
    try:
        return BlockSubmission.model_validate(dict(payload))
    except ValidationError as exc:
        raise ProfileValidationError(_errors_from(exc)) from exc
