"""Custom exception hierarchy for the risk register.

Every error carries a machine-readable ``code`` and a human ``message``.
The transport layer maps these to user-visible responses; the core never
swallows them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class RiskRegisterError(Exception):
    """Base exception for all risk register errors."""

    code: str = "RISK_REGISTER_ERROR"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


# --- Configuration ---
class ConfigError(RiskRegisterError):
    """Invalid or missing configuration."""

    code = "CONFIG_ERROR"


# --- Validation ---
@dataclass(frozen=True)
class FieldError:
    """One invalid input field."""

    field: str
    message: str
    value: Any = None


class ValidationException(RiskRegisterError):
    """Structural/input error.  Recoverable by correcting the input."""

    code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        errors: list[FieldError] | None = None,
    ) -> None:
        super().__init__(message)
        self.errors: list[FieldError] = list(errors or [])

    @classmethod
    def from_field(
        cls, field: str, message: str, value: Any = None,
    ) -> ValidationException:
        """Build an exception for a single offending field."""
        return cls(message, [FieldError(field, message, value)])

    @classmethod
    def from_errors(cls, errors: list[FieldError]) -> ValidationException:
        """Build an exception summarising several field errors."""
        fields = ", ".join(e.field for e in errors)
        return cls(f"Validation failed for: {fields}", errors)

    @property
    def fields(self) -> list[str]:
        return [e.field for e in self.errors]

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d["errors"] = [
            {"field": e.field, "message": e.message, "value": e.value}
            for e in self.errors
        ]
        return d


# --- Lookup ---
class NotFoundException(RiskRegisterError):
    """Raised by handlers when a lookup by id/risk_id returns nothing."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, identifier: Any) -> None:
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} not found: {identifier}")

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d["entity"] = self.entity
        d["identifier"] = self.identifier
        return d


# --- Business rules ---
class DomainException(RiskRegisterError):
    """A structurally valid request that a business rule disallows."""

    code = "DOMAIN_ERROR"

    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"
    MITIGATION_PLAN_REQUIRED = "MITIGATION_PLAN_REQUIRED"
    CANNOT_DELETE_CRITICAL_RISK = "CANNOT_DELETE_CRITICAL_RISK"

    def __init__(self, message: str, code: str) -> None:
        super().__init__(message, code)
