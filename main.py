"""
Tutorial Portal Entry Point.

Bootstraps the dependency graph via constructor injection, restores any
stored Supabase session and reports what the signed-in user may open.
Every subsystem is wired here; no module-level globals.

Usage::

    python main.py                 # report the restored session
    python main.py /admin/users    # also run the route guard for a path
"""

from __future__ import annotations

import sys
import traceback

from portal.config import get_config
from portal.context import PortalContext
from portal.logger import StructuredLogger, get_logger
from portal.navigation import HeadlessNavigator


def main(argv: list[str]) -> int:
    """Wire dependencies, restore the session, report, tear down."""
    # ------------------------------------------------------------------
    # 1. Configuration (from .env / environment variables) and logging
    # ------------------------------------------------------------------
    config = get_config()
    logger: StructuredLogger = get_logger("main", config)
    logger.info("Starting tutorial portal...")

    # ------------------------------------------------------------------
    # 2. Context (database, session, services, route table)
    # ------------------------------------------------------------------
    requested_path = argv[0] if argv else "/dashboard"
    navigator = HeadlessNavigator(initial_path=requested_path, logger=logger)
    context = PortalContext.from_config(config, navigator=navigator)

    # ------------------------------------------------------------------
    # 3. Restore + report
    # ------------------------------------------------------------------
    with context:
        snapshot = context.session.snapshot
        logger.info(
            "Session state: %s", snapshot.state,
            extra={
                "email": snapshot.identity.email if snapshot.identity else None,
                "effective_role": snapshot.effective_role,
            },
        )
        for route in context.registry.routes_for_role(snapshot.effective_role):
            logger.info("Accessible route: %s (%s)", route.path, route.display_name)

        decision = context.navigate(requested_path)
        logger.info(
            "Route decision for %s: %s", requested_path, decision.kind,
            extra={"redirect_to": decision.path, "access_denied": decision.access_denied},
        )

    logger.info("Tutorial portal shut down.")
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main(sys.argv[1:]))
    except KeyboardInterrupt:
        pass
    except Exception as exc:
        detail = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        sys.stderr.write(f"FATAL: {type(exc).__name__}: {exc}\n{detail}")
        sys.exit(1)
