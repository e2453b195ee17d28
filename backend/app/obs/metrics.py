"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from typing import Iterable

from prometheus_client import Counter, Gauge, Histogram, Summary


REQUEST_COUNTER = Counter(
	"profiles_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"profiles_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

PROFILE_CACHE_LOOKUPS = Counter(
	"profiles_cache_lookups_total",
	"Merged profile cache lookups by tag and result",
	["tag", "result"],
)

PROFILE_CACHE_DEGRADED = Counter(
	"profiles_cache_degraded_total",
	"Cache backend errors treated as a miss or skipped write",
	["operation"],
)

PROFILE_CACHE_INVALIDATIONS = Counter(
	"profiles_cache_invalidations_total",
	"Cache partitions invalidated per tag",
	["tag"],
)

PROFILE_CACHE_BUILD_LATENCY = Histogram(
	"profiles_cache_build_seconds",
	"Time spent assembling a merged profile on a cache miss",
	buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
)

PROFILE_CACHE_INDEX_PRUNED = Counter(
	"profiles_cache_index_pruned_total",
	"Slugs dropped from the cache index by the sweeper",
)

CANONICAL_FIELD_WRITES = Counter(
	"profiles_canonical_field_writes_total",
	"Canonical field writes by route",
	["route"],
)

CHANGE_RECORDS_EMITTED = Counter(
	"profiles_change_records_total",
	"Field change records handed to the claim sink",
)

CLAIM_SINK_FAILURES = Counter(
	"profiles_claim_sink_failures_total",
	"Claim sink submissions that failed",
)

DERIVATION_LOOKUP_FAILURES = Counter(
	"profiles_derivation_lookup_failures_total",
	"Derivation collaborator failures that left a field unset",
	["lookup"],
)

BLOCK_MUTATIONS = Counter(
	"profiles_block_mutations_total",
	"Content block mutations",
	["action"],
)

BLOCK_REJECTIONS = Counter(
	"profiles_block_rejections_total",
	"Block operations rejected before mutation",
	["reason"],
)

DRAFT_DECISIONS = Counter(
	"profiles_draft_decisions_total",
	"Draft promotions and rejections",
	["decision"],
)

REDIS_UP = Gauge("profiles_redis_up", "Redis availability (1=up,0=down)")
REDIS_LATENCY = Summary("profiles_redis_latency_seconds", "Redis ping latency (seconds)")

POSTGRES_UP = Gauge("profiles_postgres_up", "Postgres availability (1=up,0=down)")
POSTGRES_LATENCY = Summary("profiles_postgres_latency_seconds", "Postgres ping latency (seconds)")

BACKGROUND_RUNS = Counter(
	"profiles_jobs_runs_total",
	"Background job executions",
	["name", "result"],
)

BACKGROUND_DURATION = Histogram(
	"profiles_jobs_duration_seconds",
	"Background job duration",
	["name"],
	buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0),
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_cache_hit(tag: str) -> None:
	PROFILE_CACHE_LOOKUPS.labels(tag=tag, result="hit").inc()


def inc_cache_miss(tag: str) -> None:
	PROFILE_CACHE_LOOKUPS.labels(tag=tag, result="miss").inc()


def inc_cache_degraded(operation: str) -> None:
	PROFILE_CACHE_DEGRADED.labels(operation=operation).inc()


def inc_cache_invalidations(tags: Iterable[str]) -> None:
	for tag in tags:
		PROFILE_CACHE_INVALIDATIONS.labels(tag=tag).inc()


def observe_cache_build(elapsed_seconds: float) -> None:
	PROFILE_CACHE_BUILD_LATENCY.observe(elapsed_seconds)


def inc_cache_index_pruned(count: int) -> None:
	if count > 0:
		PROFILE_CACHE_INDEX_PRUNED.inc(count)


def inc_field_writes(route: str, count: int) -> None:
	if count > 0:
		CANONICAL_FIELD_WRITES.labels(route=route).inc(count)


def inc_change_records(count: int) -> None:
	if count > 0:
		CHANGE_RECORDS_EMITTED.inc(count)


def inc_claim_sink_failure() -> None:
	CLAIM_SINK_FAILURES.inc()


def inc_lookup_failure(lookup: str) -> None:
	DERIVATION_LOOKUP_FAILURES.labels(lookup=lookup).inc()


def inc_block_mutation(action: str, count: int = 1) -> None:
	if count > 0:
		BLOCK_MUTATIONS.labels(action=action).inc(count)


def inc_block_rejection(reason: str) -> None:
	BLOCK_REJECTIONS.labels(reason=reason).inc()


def inc_draft_decision(decision: str) -> None:
	DRAFT_DECISIONS.labels(decision=decision).inc()


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)


def mark_postgres(ok: bool, *, latency_seconds: float | None = None) -> None:
	POSTGRES_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		POSTGRES_LATENCY.observe(latency_seconds)


def record_job_run(name: str, *, result: str, duration_seconds: float | None = None) -> None:
	BACKGROUND_RUNS.labels(name=name, result=result).inc()
	if duration_seconds is not None:
		BACKGROUND_DURATION.labels(name=name).observe(duration_seconds)
