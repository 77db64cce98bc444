"""boardalign configuration using pydantic-settings.

All configuration is strongly typed and supports environment variables
and .env files. Values are read-only: the alignment core never writes
configuration back, it receives the values it needs at construction time.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from boardalign.alignment.validator import Tolerances


class ConfigError(Exception):
    """Raised when a configuration value is missing or invalid.

    Example:
        >>> Settings(_env_file=None, SCALING_TOLERANCE=-1).tolerances()
        Traceback (most recent call last):
        ...
        ConfigError: SCALING_TOLERANCE is invalid (-1.0): must be >= 0.
    """

    def __init__(self, key_name: str, value: object, reason: str) -> None:
        """Initialize configuration error.

        Args:
            key_name: Setting (environment variable) name.
            value: The offending value.
            reason: Why the value was rejected.
        """
        self.key_name = key_name
        self.value = value
        self.reason = reason
        super().__init__(f"{key_name} is invalid ({value!r}): {reason}.")


class Settings(BaseSettings):
    """Application settings loaded from environment variables or .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "console"  # "console" or "json"

    # Fit acceptance (unitless fractions)
    SCALING_TOLERANCE: float = 0.05
    SHEARING_TOLERANCE: float = 0.05

    # Max board origin movement accepted after a fit
    BOARD_LOCATION_TOLERANCE: float = 5.0
    BOARD_LOCATION_TOLERANCE_UNITS: str = "mm"

    # Travel ordering
    TRAVEL_MAX_PASSES: int = 50

    def tolerances(self) -> Tolerances:
        """Build the tolerance bundle consumed by the alignment core.

        Returns:
            Tolerances built from the configured scalars.

        Raises:
            ConfigError: If a tolerance is negative or the unit is unknown.
        """
        from boardalign.alignment.validator import Tolerances  # noqa: PLC0415
        from boardalign.geometry.primitives import Length, LengthUnit  # noqa: PLC0415

        for key in (
            "SCALING_TOLERANCE",
            "SHEARING_TOLERANCE",
            "BOARD_LOCATION_TOLERANCE",
        ):
            value = getattr(self, key)
            if value < 0:
                raise ConfigError(key, value, "must be >= 0")

        try:
            units = LengthUnit.parse(self.BOARD_LOCATION_TOLERANCE_UNITS)
        except ValueError:
            raise ConfigError(
                "BOARD_LOCATION_TOLERANCE_UNITS",
                self.BOARD_LOCATION_TOLERANCE_UNITS,
                f"expected one of {', '.join(u.value for u in LengthUnit)}",
            ) from None

        return Tolerances(
            scaling_tolerance=self.SCALING_TOLERANCE,
            shearing_tolerance=self.SHEARING_TOLERANCE,
            board_location_tolerance=Length(
                value=self.BOARD_LOCATION_TOLERANCE, units=units
            ),
        )

    def require_travel_passes(self) -> int:
        """Get the travel pass budget, raising ConfigError if not positive."""
        if self.TRAVEL_MAX_PASSES < 1:
            raise ConfigError(
                "TRAVEL_MAX_PASSES", self.TRAVEL_MAX_PASSES, "must be >= 1"
            )
        return self.TRAVEL_MAX_PASSES


# Singleton instance for import convenience
settings = Settings()
