"""Typed failures raised by the university profile engine."""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Sequence


class ProfileError(Exception):
    """Base class carrying the HTTP status and machine-readable code."""

    status_code = 400
    code = "profile_error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_payload(self) -> dict[str, Any]:
        return {"detail": self.code, "message": self.message}


class ProfileValidationError(ProfileError, ValueError):
    """Raw block input failed validation before derivation ran."""

    status_code = 422
    code = "validation_error"

    def __init__(self, errors: Sequence[Mapping[str, Any]], message: str | None = None) -> None:
        self.errors = [dict(item) for item in errors]
        fields = ", ".join(str(item.get("field")) for item in self.errors if item.get("field"))
        super().__init__(message or (f"invalid fields: {fields}" if fields else "invalid block payload"))

    @classmethod
    def for_field(cls, field: str, reason: str) -> "ProfileValidationError":
        return cls([{"field": field, "reason": reason}])

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["errors"] = self.errors
        return payload


class ProfileNotFound(ProfileError, LookupError):
    status_code = 404
    code = "not_found"

    def __init__(self, kind: str, identifier: str) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} not found")

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["detail"] = f"{self.kind}_not_found"
        return payload


class BlockPermissionDenied(ProfileError):
    status_code = 403
    code = "permission_denied"

    def __init__(self, message: str, *, fields: Iterable[str] = (), block_ids: Iterable[str] = ()) -> None:
        self.fields = sorted(fields)
        self.block_ids = sorted(block_ids)
        super().__init__(message)

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        if self.fields:
            payload["fields"] = self.fields
        if self.block_ids:
            payload["block_ids"] = self.block_ids
        return payload


class RegistryConfigurationError(ProfileError, RuntimeError):
    """The field registry is inconsistent; raised at startup only."""

    status_code = 500
    code = "configuration_error"

    def __init__(self, problems: Sequence[str]) -> None:
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))


class DependencyDegraded(ProfileError):
    """A non-critical collaborator failed; callers log it and carry on."""

    status_code = 503
    code = "dependency_degraded"

    def __init__(self, dependency: str, message: str | None = None) -> None:
        self.dependency = dependency
        super().__init__(message or f"{dependency} unavailable")
