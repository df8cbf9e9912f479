"""notify-engine Test Suite

Test organization:
- unit/: Unit tests for individual modules
  - ratelimit/: Limit table and multi-tier rate limiter
  - notifications/: Scheduler pipeline, batching, quiet hours, preferences, delivery
  - social/: Comment posting through the rate limiter
  - config/: Configuration loading, engine wiring, logging, CLI
- integration/: Engine-level flows across components

Running tests:
    # All tests
    pytest

    # Specific area
    pytest tests/unit/notifications/

    # Skip integration flows
    pytest -m "not integration"
"""
