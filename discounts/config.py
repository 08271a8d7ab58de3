"""Dataclass-based configuration for discount stacking.

Thresholds and feature flags live in frozen dataclasses: typed, defaulted,
immutable, and overridable from the environment. Resolution code receives the
config as an explicit argument instead of reading a global, so every decision
is a function of its inputs.
"""

import os
from dataclasses import dataclass, field


def _env_bool(name: str) -> bool | None:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return None
    return raw.strip().lower() in ("1", "true", "yes", "on")


# ---------------------------------------------------------------------------
# Nested config sections
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ResolutionConfig:
    """Conflict-resolution and screening switches."""

    manual_coupons_override_auto: bool = True
    enforce_compliance: bool = True  # error-severity violations veto candidates
    check_eligibility: bool = True  # min cart value, customer groups, coupon code


@dataclass(frozen=True)
class AuditConfig:
    """Audit-trail write and query settings."""

    record_all: bool = True  # False: only discounts with require_audit_trail
    max_retries: int = 3
    backoff_base: float = 0.1  # seconds
    backoff_max: float = 5.0
    max_replays: int = 3  # dead-letter replays before discard
    default_query_limit: int = 100
    default_jurisdiction: str | None = None


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StackingConfig:
    """Complete configuration for the discount service.

    Usage::

        config = StackingConfig.default()
        resolution = resolve(grouped, cart,
            manual_coupons_override_auto=config.resolution.manual_coupons_override_auto)
    """

    resolution: ResolutionConfig = field(default_factory=ResolutionConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)
    default_currency: str = "USD"

    @classmethod
    def default(cls) -> "StackingConfig":
        """Create config with all defaults."""
        return cls()

    @classmethod
    def from_env(cls, prefix: str = "DISCOUNTS_") -> "StackingConfig":
        """Create config from environment variables.

        Example: DISCOUNTS_MANUAL_COUPONS_OVERRIDE_AUTO=false
        """
        resolution_overrides: dict = {}
        for key in ("manual_coupons_override_auto", "enforce_compliance", "check_eligibility"):
            value = _env_bool(f"{prefix}{key.upper()}")
            if value is not None:
                resolution_overrides[key] = value

        audit_overrides: dict = {}
        record_all = _env_bool(f"{prefix}AUDIT_RECORD_ALL")
        if record_all is not None:
            audit_overrides["record_all"] = record_all
        max_retries = os.getenv(f"{prefix}AUDIT_MAX_RETRIES")
        if max_retries:
            audit_overrides["max_retries"] = int(max_retries)
        backoff = os.getenv(f"{prefix}AUDIT_BACKOFF_BASE")
        if backoff:
            audit_overrides["backoff_base"] = float(backoff)
        jurisdiction = os.getenv(f"{prefix}DEFAULT_JURISDICTION")
        if jurisdiction:
            audit_overrides["default_jurisdiction"] = jurisdiction.upper()

        overrides = {}
        currency = os.getenv(f"{prefix}DEFAULT_CURRENCY")
        if currency:
            overrides["default_currency"] = currency.upper()

        return cls(
            resolution=ResolutionConfig(**resolution_overrides),
            audit=AuditConfig(**audit_overrides),
            **overrides,
        )


# Process-wide instance used by the API layer
config = StackingConfig.from_env()
