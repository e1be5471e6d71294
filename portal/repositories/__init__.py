"""Repository layer: Supabase data access per table."""

from portal.repositories.audit_repository import AuditRepository, AuditSinkError
from portal.repositories.base_repository import BaseRepository
from portal.repositories.profile_repository import ProfileRepository
from portal.repositories.tutorial_repository import TutorialRepository

__all__ = [
    "AuditRepository",
    "AuditSinkError",
    "BaseRepository",
    "ProfileRepository",
    "TutorialRepository",
]
