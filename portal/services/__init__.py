"""
Business Logic Services Package.

Services depend on the Repository layer for data access and on the
shared ``SessionManager`` for the current actor.

The ``create_services()`` factory wires every repository and service together,
returning a typed dict that the application layer can consume without
knowing the internal dependency graph.
"""

from __future__ import annotations

from typing import Optional, TypedDict

from portal.auth import SessionManager
from portal.config import AppConfig
from portal.database import DatabaseManager
from portal.feature_flags import FeatureFlags
from portal.logger import StructuredLogger, get_logger
from portal.navigation import Navigator
from portal.repositories.audit_repository import AuditRepository
from portal.repositories.profile_repository import ProfileRepository
from portal.repositories.tutorial_repository import TutorialRepository
from portal.services.audit_service import AuditService
from portal.services.magic_link_service import MagicLinkService
from portal.services.profile_provisioning import ProfileProvisioningService
from portal.services.profile_service import ProfileService
from portal.services.role_resolver import RoleResolver
from portal.services.route_guard import RouteGuard
from portal.services.route_registry import RouteRegistry
from portal.services.session_machine import Scheduler, SessionStateMachine, ThreadingScheduler
from portal.services.tutorial_service import TutorialService


class ServiceContainer(TypedDict):
    """Typed container for all portal services."""

    audit_service: AuditService
    role_resolver: RoleResolver
    profile_provisioning_service: ProfileProvisioningService
    profile_service: ProfileService
    tutorial_service: TutorialService
    magic_link_service: MagicLinkService
    route_guard: RouteGuard
    session_machine: SessionStateMachine


def create_services(
    db: DatabaseManager,
    config: AppConfig,
    flags: FeatureFlags,
    session: SessionManager,
    registry: RouteRegistry,
    navigator: Navigator,
    scheduler: Optional[Scheduler] = None,
    logger: Optional[StructuredLogger] = None,
) -> ServiceContainer:
    """
    Wire all repositories and services together.

    This is the single composition root for the service layer.  The
    portal context calls this once at startup.

    Args:
        db: Initialised DatabaseManager.
        config: Application configuration.
        flags: Feature-flag snapshot resolved from *config*.
        session: Shared session holder.
        registry: Route table.
        navigator: Redirect target for the state machine.
        scheduler: Timer source; defaults to ``ThreadingScheduler``.
        logger: Shared logger; defaults to one built from *config*.

    Returns:
        ServiceContainer mapping service names to fully-wired instances.
    """
    logger = logger or get_logger("services", config)

    # ------------------------------------------------------------------
    # 1. Repositories (data-access layer)
    # ------------------------------------------------------------------
    profile_repo = ProfileRepository(db=db, logger=logger)
    tutorial_repo = TutorialRepository(db=db, logger=logger)
    audit_repo = AuditRepository(db=db, logger=logger)

    # ------------------------------------------------------------------
    # 2. Leaf services
    # ------------------------------------------------------------------
    audit_service = AuditService(
        repo=audit_repo,
        session=session,
        logger=logger,
        default_limit=config.AUDIT_LOG_LIMIT,
    )
    role_resolver = RoleResolver(
        config=config,
        flags=flags,
        audit=audit_service,
        logger=logger,
    )
    route_guard = RouteGuard(registry=registry, logger=logger)

    # ------------------------------------------------------------------
    # 3. Services that depend on the audit trail and role resolution
    # ------------------------------------------------------------------
    profile_provisioning_service = ProfileProvisioningService(
        repo=profile_repo,
        resolver=role_resolver,
        audit=audit_service,
        logger=logger,
    )
    profile_service = ProfileService(
        repo=profile_repo,
        resolver=role_resolver,
        audit=audit_service,
        logger=logger,
    )
    tutorial_service = TutorialService(
        repo=tutorial_repo,
        audit=audit_service,
        logger=logger,
    )
    magic_link_service = MagicLinkService(
        db=db,
        config=config,
        flags=flags,
        audit=audit_service,
        logger=logger,
    )

    # ------------------------------------------------------------------
    # 4. Session state machine (orchestrates the above)
    # ------------------------------------------------------------------
    session_machine = SessionStateMachine(
        db=db,
        session=session,
        profiles=profile_repo,
        provisioning=profile_provisioning_service,
        resolver=role_resolver,
        audit=audit_service,
        registry=registry,
        navigator=navigator,
        scheduler=scheduler or ThreadingScheduler(),
        flags=flags,
        logger=logger,
        login_timeout_s=config.LOGIN_TIMEOUT_S,
    )

    return ServiceContainer(
        audit_service=audit_service,
        role_resolver=role_resolver,
        profile_provisioning_service=profile_provisioning_service,
        profile_service=profile_service,
        tutorial_service=tutorial_service,
        magic_link_service=magic_link_service,
        route_guard=route_guard,
        session_machine=session_machine,
    )
