"""
Per-blueprint rate limits (Flask-Limiter).

The Limiter in cms/__init__.py carries no default limit; limits are attached
here once the blueprints are registered.  Workflow transitions get the tight
limit, config reads and the notification inbox the loose one, health probes
none.
"""

import logging

logger = logging.getLogger(__name__)

BLUEPRINT_LIMITS = {
    "workflow": "60/minute",
    "workflow_config": "200/minute",
    "notification": "200/minute",
}
EXEMPT_BLUEPRINTS = ("health",)


def init_rate_limits(app, limiter):
    """Attach limits; a no-op under TESTING or RATELIMIT_ENABLED=false."""
    if app.testing or not app.config.get("RATELIMIT_ENABLED", True):
        logger.info("Rate limiter disabled")
        return

    for name, limit in BLUEPRINT_LIMITS.items():
        bp = app.blueprints.get(name)
        if bp is not None:
            limiter.limit(limit)(bp)

    for name in EXEMPT_BLUEPRINTS:
        bp = app.blueprints.get(name)
        if bp is not None:
            limiter.exempt(bp)

    logger.info("Rate limits applied: %s", BLUEPRINT_LIMITS)
