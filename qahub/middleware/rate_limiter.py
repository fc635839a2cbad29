"""
Per-blueprint request limits (Flask-Limiter, keyed by remote address).

The ``Limiter`` itself is built in ``qahub.create_app`` without default
limits; this module attaches one limit per blueprint group. Health probes
are exempt and the whole thing is off under TESTING.
"""

import logging

logger = logging.getLogger(__name__)

# limit -> blueprints sharing it
LIMIT_GROUPS = {
    "10/minute": ("auth_bp",),                       # credential guessing
    "20/minute": ("prd_review_bp", "analytics_bp"),  # outbound calls and jobs
    "120/minute": (
        "project_bp", "testing_bp", "test_run_bp", "comment_bp", "bug_budget_bp",
        "editor_bp", "user_bp", "token_bp", "rbac_bp", "admin_bp", "notification_bp",
    ),
    "300/minute": ("audit_bp", "read_model_bp"),
}
EXEMPT_BLUEPRINTS = ("health_bp",)


def init_rate_limits(app, limiter):
    if app.config.get("TESTING"):
        logger.debug("Rate limits skipped under TESTING")
        return

    applied = 0
    for limit, names in LIMIT_GROUPS.items():
        for name in names:
            blueprint = app.blueprints.get(name)
            if blueprint is not None:
                limiter.limit(limit)(blueprint)
                applied += 1
    for name in EXEMPT_BLUEPRINTS:
        if name in app.blueprints:
            limiter.exempt(app.blueprints[name])

    logger.info("Rate limits attached to %d blueprints", applied)
