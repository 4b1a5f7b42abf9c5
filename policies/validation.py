"""
Input validation module with policy-driven rules.

Validation rules are loaded from policies/service_rules.json for:
- Auditability: Changes to validation rules are tracked
- Flexibility: Bounds can be adjusted without code changes
- Consistency: Every upstream client uses the same validation logic
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Tuple

from policies import SERVICE_RULES

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of a validation check."""

    is_valid: bool
    errors: list[str]
    warnings: list[str]

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "errors": self.errors,
            "warnings": self.warnings,
        }

    def raise_for_errors(self) -> None:
        """Raise ValueError carrying all error messages."""
        if self.has_errors:
            raise ValueError("; ".join(self.errors))


class InputValidator:
    """
    Policy-driven validator for upstream request parameters.

    Validates:
    - Latitude bounds (-90 to 90)
    - Longitude bounds (-180 to 180)
    - Forecast days (1 to 16)
    - Historical date ranges (ordered, not in the future)
    """

    def __init__(self, rules: Optional[dict] = None):
        """Load validation rules from policy configuration."""
        self.rules = (rules if rules is not None else SERVICE_RULES).get("validation", {})
        self.lat_bounds = self.rules.get("latitude", {"min": -90, "max": 90})
        self.lon_bounds = self.rules.get("longitude", {"min": -180, "max": 180})
        self.days_bounds = self.rules.get("forecast_days", {"min": 1, "max": 16})
        self.limit_bounds = self.rules.get("geocoding_limit", {"min": 1, "max": 50})

    def validate_latitude(self, lat: float) -> Tuple[bool, Optional[str]]:
        """
        Validate latitude value.

        Returns:
            Tuple of (is_valid, error_message)
        """
        min_val = self.lat_bounds.get("min", -90)
        max_val = self.lat_bounds.get("max", 90)

        if lat < min_val or lat > max_val:
            return False, f"Invalid latitude: {lat}. Must be between {min_val} and {max_val}."

        return True, None

    def validate_longitude(self, lon: float) -> Tuple[bool, Optional[str]]:
        """
        Validate longitude value.

        Returns:
            Tuple of (is_valid, error_message)
        """
        min_val = self.lon_bounds.get("min", -180)
        max_val = self.lon_bounds.get("max", 180)

        if lon < min_val or lon > max_val:
            return False, f"Invalid longitude: {lon}. Must be between {min_val} and {max_val}."

        return True, None

    def validate_days(self, days: int) -> Tuple[bool, Optional[str]]:
        """Validate the number of forecast days."""
        min_val = self.days_bounds.get("min", 1)
        max_val = self.days_bounds.get("max", 16)

        if days < min_val or days > max_val:
            return False, f"Days must be between {min_val} and {max_val}, got {days}"

        return True, None

    def validate_limit(self, limit: int) -> Tuple[bool, Optional[str]]:
        """Validate a result-count limit for location searches."""
        min_val = self.limit_bounds.get("min", 1)
        max_val = self.limit_bounds.get("max", 50)

        if limit < min_val or limit > max_val:
            return False, f"Limit must be between {min_val} and {max_val}, got {limit}"

        return True, None

    def validate_coordinates(self, latitude: float, longitude: float) -> ValidationResult:
        """
        Validate a coordinate pair.

        Args:
            latitude: Location latitude
            longitude: Location longitude

        Returns:
            ValidationResult with any errors or warnings
        """
        errors = []
        warnings = []

        lat_valid, lat_error = self.validate_latitude(latitude)
        if not lat_valid:
            errors.append(lat_error)

        lon_valid, lon_error = self.validate_longitude(longitude)
        if not lon_valid:
            errors.append(lon_error)

        if lat_valid and (latitude <= -85 or latitude >= 85):
            warnings.append("Location is near polar regions - weather data may be limited")

        if errors:
            logger.warning(f"Validation failed: {errors}")

        return ValidationResult(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
        )

    def validate_date_range(
        self,
        start: Optional[datetime],
        end: Optional[datetime],
        now: Optional[datetime] = None,
    ) -> ValidationResult:
        """
        Validate a historical date range.

        Either bound may be omitted. Naive datetimes are treated as UTC.

        Args:
            start: Range start
            end: Range end
            now: Current time, for tests

        Returns:
            ValidationResult with any errors
        """
        errors = []
        now = _as_utc(now or datetime.now(timezone.utc))
        start = _as_utc(start) if start else None
        end = _as_utc(end) if end else None

        if start and end and start > end:
            errors.append(
                f"Invalid date range: start date ({start.isoformat()}) "
                f"must be before end date ({end.isoformat()})"
            )
        if start and start > now:
            errors.append(f"Start date ({start.isoformat()}) cannot be in the future")
        if end and end > now:
            errors.append(f"End date ({end.isoformat()}) cannot be in the future")

        if errors:
            logger.warning(f"Validation failed: {errors}")

        return ValidationResult(is_valid=not errors, errors=errors, warnings=[])


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


# Create singleton instance for convenience
validator = InputValidator()
