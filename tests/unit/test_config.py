"""Tests for settings loading and the error hierarchy."""

from __future__ import annotations

import pytest

from risk_register.core.config import RiskIdConfig, Settings, load_settings
from risk_register.core.errors import (
    ConfigError,
    DomainException,
    FieldError,
    NotFoundException,
    RiskRegisterError,
    ValidationException,
)


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.database.url.startswith("sqlite+aiosqlite://")
        assert settings.pagination.max_limit == 100
        assert settings.pagination.search_limit == 50
        assert settings.risk_id.prefix == "RISK"
        assert settings.review.critical_days == 30

    def test_toml_file(self, tmp_path):
        path = tmp_path / "risk.toml"
        path.write_text(
            '[database]\nurl = "sqlite+aiosqlite:///other.db"\n'
            '[risk_id]\nprefix = "OPS"\nwidth = 4\n'
        )
        settings = load_settings(path)
        assert settings.database.url == "sqlite+aiosqlite:///other.db"
        assert settings.risk_id.prefix == "OPS"
        assert settings.risk_id.width == 4

    def test_missing_file_uses_defaults(self, tmp_path):
        assert load_settings(tmp_path / "absent.toml").risk_id.prefix == "RISK"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("RISK_REGISTER_OBSERVABILITY__LOG_LEVEL", "DEBUG")
        assert load_settings().observability.log_level == "DEBUG"

    def test_overrides(self):
        settings = load_settings(overrides={"review": {"default_days": 14}})
        assert settings.review.default_days == 14

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / "broken.toml"
        path.write_text("[database\n")
        with pytest.raises(ConfigError):
            load_settings(path)

    def test_invalid_prefix(self):
        with pytest.raises(ConfigError):
            load_settings(overrides={"risk_id": {"prefix": "risk"}})

    def test_prefix_validator(self):
        with pytest.raises(ValueError):
            RiskIdConfig(prefix="R1")


class TestErrors:
    def test_hierarchy(self):
        for exc_type in (ConfigError, ValidationException, NotFoundException, DomainException):
            assert issubclass(exc_type, RiskRegisterError)

    def test_validation_from_errors(self):
        exc = ValidationException.from_errors([
            FieldError("title", "Title is required"),
            FieldError("impact", "Impact must be between 1 and 5", 9),
        ])
        assert exc.code == "VALIDATION_ERROR"
        assert exc.fields == ["title", "impact"]
        assert exc.message == "Validation failed for: title, impact"
        assert exc.to_dict()["errors"][1] == {
            "field": "impact", "message": "Impact must be between 1 and 5", "value": 9,
        }

    def test_not_found(self):
        exc = NotFoundException("Risk", 42)
        assert exc.code == "NOT_FOUND"
        assert exc.message == "Risk not found: 42"
        assert exc.to_dict()["identifier"] == 42

    def test_domain_code(self):
        exc = DomainException("nope", DomainException.MITIGATION_PLAN_REQUIRED)
        assert exc.code == "MITIGATION_PLAN_REQUIRED"
        assert str(exc) == "nope"
