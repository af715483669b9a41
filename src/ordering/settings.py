"""Runtime settings for the order lifecycle engine.

Protean's own configuration (providers, event processing) lives in
``pyproject.toml`` under ``[tool.protean]``. The knobs below are engine
policies read from the environment, so deployments can change them without
touching the domain config.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class OrderingSettings(BaseSettings):
    """Engine policies.

    require_tracking_on_ship:
        Strict by default: an order cannot move to ``shipped`` without a
        tracking number. Set ``ORDERING_REQUIRE_TRACKING=false`` to allow
        shipments to be recorded before the courier issues one.
    persistence_timeout:
        Upper bound, in seconds, for a single repository call.
    """

    model_config = SettingsConfigDict(
        env_prefix="ORDERING_",
        env_ignore_empty=True,
        case_sensitive=False,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    require_tracking_on_ship: bool = Field(
        default=True,
        validation_alias="ORDERING_REQUIRE_TRACKING",
        description="Refuse to ship without a tracking number",
    )
    persistence_timeout: float = Field(default=5.0, gt=0, description="Seconds allowed per repository call")
    currency: str = Field(default="INR", min_length=3, max_length=3)
    catalog_adapter: str = Field(
        default="memory",
        validation_alias="CATALOG_ADAPTER",
        description="Catalog adapter backing quotes and stock",
    )

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return v.upper()


_settings_instance = None


def get_settings() -> OrderingSettings:
    """Return the process-wide settings, loading them from the environment once."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = OrderingSettings()
    return _settings_instance


def reset_settings():
    """Drop cached settings (useful for testing)."""
    global _settings_instance
    _settings_instance = None
