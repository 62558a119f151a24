"""Failure types raised by the client and workflows."""
from __future__ import annotations

from typing import Any, Literal

from pydantic import ValidationError

GENERIC_ERROR = "Something went wrong while talking to the hospital service."


class FormValidationError(Exception):
    """Rejected locally, before any request is issued."""

    def __init__(self, message: str, field_errors: dict[str, str] | None = None):
        self.message = message
        self.field_errors = field_errors or {}
        super().__init__(message)

    @classmethod
    def from_pydantic(cls, exc: ValidationError) -> "FormValidationError":
        fields = {}
        for err in exc.errors():
            name = ".".join(str(p) for p in err["loc"]) or "form"
            fields.setdefault(name, err["msg"])
        summary = "; ".join(f"{k}: {v}" for k, v in fields.items())
        return cls(summary or "Invalid form", fields)


class HospitalApiError(Exception):
    """The hospital API reported a failure.

    kind is "logical" for a well-formed envelope with success=false (or no data),
    "transport" for network errors and HTTP 4xx/5xx.
    """

    def __init__(
        self,
        kind: Literal["logical", "transport"],
        message: str | None = None,
        status_code: int | None = None,
        payload: Any = None,
    ):
        self.kind = kind
        self.message = message
        self.status_code = status_code
        self.payload = payload
        super().__init__(message or f"{kind} failure (status={status_code})")

    @property
    def not_found(self) -> bool:
        return self.status_code == 404

    def describe(self, fallback: str = GENERIC_ERROR) -> str:
        if self.payload is not None:
            return describe_error(self.payload, self.message or fallback)
        return self.message or fallback


def describe_error(payload: Any, fallback: str = GENERIC_ERROR) -> str:
    """Pick the most specific human-readable message out of an error body."""
    if isinstance(payload, dict):
        for key in ("message", "Message"):
            if payload.get(key):
                return str(payload[key])
        if payload.get("title"):
            text = str(payload["title"])
            details: list[str] = []
            for value in (payload.get("errors") or {}).values():
                if isinstance(value, list):
                    details.extend(str(v) for v in value)
                else:
                    details.append(str(value))
            if details:
                text += "\n\nDetails:\n" + "\n".join(details)
            return text
    elif isinstance(payload, str) and payload.strip():
        return payload
    return fallback
