"""
KYC Review Settings

Runtime settings read from KYCR_* environment variables. Defaults are the
production values. Invalid values fail at load time with a
ConfigurationError.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import ConfigurationError

ENV_PREFIX = "KYCR_"


class Settings(BaseModel):
    """Runtime configuration for the decision and workflow engines."""

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # Decision engine
    model_version: str = "gpt-4-turbo"
    fallback_model_version: str = "error-fallback"
    classifier_timeout_seconds: float = Field(30.0, gt=0)
    neighbor_k: int = Field(10, ge=1)
    duplicate_threshold: float = Field(0.95, gt=0, le=1)

    # Bulk processing
    bulk_max_workers: int = Field(4, ge=1)

    # Compliance
    audit_interval_days: int = Field(30, ge=1)
    retention_days: int = Field(365 * 7, ge=1)
    data_region: str = "IN"
    processing_region: str = "IN"
    allowed_transfer_regions: tuple[str, ...] = ()
    consent_capture_enabled: bool = False

    # Governance pack (None -> bundled default)
    pack_path: Optional[Path] = None

    model_config = {"extra": "forbid", "frozen": True}

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return v

    @field_validator("data_region", "processing_region")
    @classmethod
    def normalize_region(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("allowed_transfer_regions", mode="before")
    @classmethod
    def split_regions(cls, v):
        if isinstance(v, str):
            return tuple(r.strip().upper() for r in v.split(",") if r.strip())
        return tuple(r.upper() for r in v)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> Settings:
        """
        Build settings from KYCR_* variables.

        Unset variables keep their defaults. Unknown KYCR_* names are
        rejected.
        """
        env = os.environ if environ is None else environ
        values = {
            key[len(ENV_PREFIX):].lower(): value
            for key, value in env.items()
            if key.startswith(ENV_PREFIX) and value != ""
        }
        try:
            return cls.model_validate(values)
        except ValidationError as e:
            raise ConfigurationError(
                message=f"Invalid settings: {e.error_count()} errors",
                details={"errors": e.errors(include_url=False, include_context=False)},
            ) from e
