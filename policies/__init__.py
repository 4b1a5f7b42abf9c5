# Policies package
"""
Policy-driven configuration for the weather data service.

Operational rules are stored in JSON files for:
- Auditability: TTL and retry changes are tracked and explainable
- Controllability: Operators can tune rate limits without code changes
- Maintainability: Per-domain cache lifetimes live in one place
"""

from pathlib import Path
import json

POLICIES_DIR = Path(__file__).parent


def load_service_rules() -> dict:
    """Load service rules from JSON configuration."""
    rules_path = POLICIES_DIR / "service_rules.json"
    with open(rules_path, "r", encoding="utf-8") as f:
        return json.load(f)


# Pre-load rules on import for performance
SERVICE_RULES = load_service_rules()
