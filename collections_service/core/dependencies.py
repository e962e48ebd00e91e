"""
Dependency injection for FastAPI application.

Provides factory functions for the repository, the services built on it and
the caller's identity.
"""
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header

from collections_service.core.config import Settings, get_settings
from collections_service.core.exceptions import UnauthorizedError
from collections_service.core.logging import set_user
from collections_service.core.permissions import AuthenticatedUser, Role
from collections_service.database import (
    CollectionsRepository,
    InMemoryCollectionsRepository,
    SqlCollectionsRepository,
)
from collections_service.services.authorization_service import AuthorizationService
from collections_service.services.follow_up_service import FollowUpService
from collections_service.services.rule_service import RuleService
from collections_service.services.transition_evaluator import TransitionEvaluator


@lru_cache()
def get_repository() -> CollectionsRepository:
    """Get the process-wide repository (SQL when DATABASE_URL is set)."""
    settings = get_settings()
    if settings.database_url:
        repository = SqlCollectionsRepository.from_url(
            settings.database_url, echo=settings.database_echo
        )
        repository.create_schema()
        return repository
    return InMemoryCollectionsRepository()


def get_transition_evaluator(
    repository: CollectionsRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> TransitionEvaluator:
    return TransitionEvaluator(repository, strict_ambiguity=settings.strict_rule_ambiguity)


def get_authorization_service(
    repository: CollectionsRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> AuthorizationService:
    return AuthorizationService(repository, settings)


def get_follow_up_service(
    repository: CollectionsRepository = Depends(get_repository),
    evaluator: TransitionEvaluator = Depends(get_transition_evaluator),
    authorization_service: AuthorizationService = Depends(get_authorization_service),
    settings: Settings = Depends(get_settings),
) -> FollowUpService:
    return FollowUpService(repository, evaluator, authorization_service, settings)


def get_rule_service(
    repository: CollectionsRepository = Depends(get_repository),
) -> RuleService:
    return RuleService(repository)


def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> AuthenticatedUser:
    """
    Resolve the caller from the identity headers set by the upstream auth layer.

    Raises:
        UnauthorizedError: If either header is missing or invalid
    """
    if not x_user_id or not x_user_role:
        raise UnauthorizedError()
    try:
        user_id = int(x_user_id)
        role = Role(x_user_role.strip().lower())
    except ValueError:
        raise UnauthorizedError("Invalid user identity headers") from None

    set_user(str(user_id), role.value)
    return AuthenticatedUser(id=user_id, role=role)
