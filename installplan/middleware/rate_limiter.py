"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in installplan/__init__.py with no default
limits; this module applies granular limits per route category.

Usage:
    from installplan.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"
JOB_TRIGGER_LIMIT = "10/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Job trigger endpoints:  10/minute  (snapshot runs walk every project)
        - Scheduling/dependency:  60/minute
        - EVM analytics:          200/minute (GET, dashboards poll it)
        - Health check:           exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("scheduler")
    if bp:
        limiter.limit(JOB_TRIGGER_LIMIT)(bp)

    for bp_name in ("schedule", "dependencies", "work_packages"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    bp = app.blueprints.get("evm")
    if bp:
        limiter.limit(READ_LIMIT)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    logger.info(
        "Rate limiter configured: jobs: %s, write: %s, evm: %s",
        JOB_TRIGGER_LIMIT, WRITE_LIMIT, READ_LIMIT,
    )
