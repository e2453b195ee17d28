"""Field registry: which block types write which university columns.

The registry is built once at startup and handed to every profile component.
Construction validates the tables and raises ``RegistryConfigurationError``
on any inconsistency so a misconfigured process never serves traffic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping

from app.profiles.domain.errors import RegistryConfigurationError

TAG_IDENTITY = "identity"
TAG_ADMISSIONS = "admissions"
TAG_COST = "cost"
TAG_LOCATION = "location"
TAG_OUTCOMES = "outcomes"
TAG_RESEARCH = "research"
TAG_MICROCONTENT = "microcontent"
TAG_CANONICAL = "canonical"

SCALAR_TAGS: tuple[str, ...] = (
    TAG_IDENTITY,
    TAG_ADMISSIONS,
    TAG_COST,
    TAG_LOCATION,
    TAG_OUTCOMES,
    TAG_RESEARCH,
)
ALL_TAGS: tuple[str, ...] = SCALAR_TAGS + (TAG_MICROCONTENT, TAG_CANONICAL)


CANONICAL_FIELD_MAP: dict[str, tuple[str, ...]] = {
    "admissions_range_meter": (
        "acceptance_rate",
        "min_gpa",
        "avg_gpa",
        "sat_math_25",
        "sat_math_75",
        "sat_verbal_25",
        "sat_verbal_75",
        "act_composite_25",
        "act_composite_75",
        "avg_sat_score",
        "avg_act_score",
    ),
    "cost_breakdown_chart": (
        "tuition_in_state",
        "tuition_out_state",
        "tuition_international",
        "room_and_board",
        "books_and_supplies",
        "cost_of_living",
    ),
    "financial_aid_wizard": (
        "tuition_in_state",
        "tuition_out_state",
        "average_net_price",
        "percent_receiving_aid",
    ),
    "geographic_physical": (
        "address",
        "city",
        "state",
        "zip_code",
        "country",
        "latitude",
        "longitude",
        "climate_zone",
        "nearest_airport",
        "campus_size_acres",
        "region",
    ),
    "outcome_metrics": (
        "graduation_rate",
        "retention_rate",
        "employment_rate",
        "average_starting_salary",
    ),
    "institutional_profile": (
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
    "student_body_profile": (
        "student_population",
        "percent_male",
        "percent_female",
        "diversity_score",
        "student_faculty_ratio",
    ),
}

# Essential blocks that every profile keeps but which write no columns.
ESSENTIAL_BLOCK_TYPES: tuple[str, ...] = (
    "rich_text_block",
    "deadline_card",
    "contact_box",
    "campus_map_poi",
)

HARD_BLOCK_TYPES: tuple[str, ...] = tuple(CANONICAL_FIELD_MAP) + ESSENTIAL_BLOCK_TYPES

STAGED_FIELDS: tuple[str, ...] = (
    "acceptance_rate",
    "min_gpa",
    "avg_gpa",
    "sat_math_25",
    "sat_math_75",
    "sat_verbal_25",
    "sat_verbal_75",
    "act_composite_25",
    "act_composite_75",
    "avg_sat_score",
    "avg_act_score",
    "tuition_in_state",
    "tuition_out_state",
    "tuition_international",
    "room_and_board",
    "books_and_supplies",
    "cost_of_living",
    "average_net_price",
    "student_population",
    "address",
    "city",
    "state",
    "zip_code",
    "country",
    "latitude",
    "longitude",
    "climate_zone",
    "nearest_airport",
    "graduation_rate",
    "retention_rate",
    "employment_rate",
    "average_starting_salary",
)

FIELD_TAGS: dict[str, str] = {
    **{name: TAG_IDENTITY for name in CANONICAL_FIELD_MAP["institutional_profile"]},
    **{name: TAG_IDENTITY for name in CANONICAL_FIELD_MAP["student_body_profile"]},
    **{name: TAG_ADMISSIONS for name in CANONICAL_FIELD_MAP["admissions_range_meter"]},
    **{name: TAG_COST for name in CANONICAL_FIELD_MAP["cost_breakdown_chart"]},
    **{name: TAG_COST for name in CANONICAL_FIELD_MAP["financial_aid_wizard"]},
    **{name: TAG_LOCATION for name in CANONICAL_FIELD_MAP["geographic_physical"]},
    **{name: TAG_OUTCOMES for name in CANONICAL_FIELD_MAP["outcome_metrics"]},
    # Written by the ROI sync and research import jobs, not by blocks.
    "roi_percentage": TAG_OUTCOMES,
    "research_output_score": TAG_RESEARCH,
    "citation_index": TAG_RESEARCH,
}


@dataclass(frozen=True, slots=True)
class FieldRegistry:
    """Immutable lookup tables for block types, fields, staging and cache tags."""

    field_map: Mapping[str, frozenset[str]]
    hard_block_types: frozenset[str]
    staged_fields: frozenset[str]
    field_tags: Mapping[str, str]
    _tag_fields: Mapping[str, frozenset[str]] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._validate()
        grouped: dict[str, set[str]] = {tag: set() for tag in SCALAR_TAGS}
        for name, tag in self.field_tags.items():
            grouped[tag].add(name)
        object.__setattr__(
            self,
            "_tag_fields",
            MappingProxyType({tag: frozenset(names) for tag, names in grouped.items()}),
        )

    @classmethod
    def build(
        cls,
        field_map: Mapping[str, Iterable[str]],
        *,
        hard_block_types: Iterable[str],
        staged_fields: Iterable[str],
        field_tags: Mapping[str, str],
    ) -> "FieldRegistry":
        return cls(
            field_map=MappingProxyType({key: frozenset(values) for key, values in field_map.items()}),
            hard_block_types=frozenset(hard_block_types),
            staged_fields=frozenset(staged_fields),
            field_tags=MappingProxyType(dict(field_tags)),
        )

    @classmethod
    def default(cls) -> "FieldRegistry":
        return cls.build(
            CANONICAL_FIELD_MAP,
            hard_block_types=HARD_BLOCK_TYPES,
            staged_fields=STAGED_FIELDS,
            field_tags=FIELD_TAGS,
        )

    def _validate(self) -> None:
        problems: list[str] = []
        writable = set()
        for block_type, names in self.field_map.items():
            if not names:
                problems.append(f"canonical block type {block_type!r} writes no fields")
            if block_type not in self.hard_block_types:
                problems.append(f"canonical block type {block_type!r} is not registered as hard")
            for name in names:
                writable.add(name)
                if name not in self.field_tags:
                    problems.append(f"field {name!r} of {block_type!r} has no cache tag")
        for name, tag in self.field_tags.items():
            if tag not in SCALAR_TAGS:
                problems.append(f"field {name!r} maps to unknown tag {tag!r}")
        for name in self.staged_fields:
            if name not in writable:
                problems.append(f"staged field {name!r} is not writable by any block type")
        if problems:
            raise RegistryConfigurationError(problems)

    def writable_fields(self, block_type: str) -> frozenset[str]:
        return self.field_map.get(block_type, frozenset())

    def requires_staging(self, field_name: str) -> bool:
        return field_name in self.staged_fields

    def cache_tag(self, field_name: str) -> str:
        try:
            return self.field_tags[field_name]
        except KeyError:
            raise RegistryConfigurationError([f"field {field_name!r} has no cache tag"]) from None

    def is_hard_block_type(self, block_type: str) -> bool:
        return block_type in self.hard_block_types

    def is_canonical_block_type(self, block_type: str) -> bool:
        return block_type in self.field_map

    def tags_for(self, field_names: Iterable[str]) -> set[str]:
        return {self.cache_tag(name) for name in field_names}

    def fields_for_tag(self, tag: str) -> frozenset[str]:
        return self._tag_fields.get(tag, frozenset())

    @property
    def scalar_fields(self) -> frozenset[str]:
        return frozenset(self.field_tags)


_default_registry: FieldRegistry | None = None


def get_registry() -> FieldRegistry:
    global _default_registry
    if _default_registry is None:
        _default_registry = FieldRegistry.default()
    return _default_registry
