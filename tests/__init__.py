# Tests package
"""
Unit and integration tests for the Weather Tools API.

Test categories:
- test_cache.py, test_errors.py, test_retry.py, test_rate_limiter.py: resilience primitives
- test_orchestrator.py: Provider ordering, fallback and caching
- test_geocoding.py, test_noaa.py, test_weather.py: Upstream clients
- test_config.py, test_validation.py: Policy configuration and input validation
- test_api.py, test_main.py: API endpoint integration tests
"""
