"""
Onboarding Use Case.

Answers the readiness question the presentation layer polls ("does a local
user profile exist") and emits the completion signal the app shell listens
for, so it can switch from onboarding to the main app without a reload.
"""

import logging
from typing import Any, Dict, Optional

from application.use_cases.record_mutation import RecordMutationService
from backend.sync.events import EventBus, OnboardingCompleted
from domain.models import DomainRecord, EntityType

logger = logging.getLogger(__name__)


class OnboardingService:
    """Use case for the readiness gate and onboarding completion."""

    def __init__(self, mutations: RecordMutationService, events: EventBus) -> None:
        self._mutations = mutations
        self._events = events

    async def local_profile(self) -> Optional[DomainRecord]:
        profiles = await self._mutations.list(EntityType.USERS)
        return profiles[0] if profiles else None

    async def has_local_profile(self) -> bool:
        return await self.local_profile() is not None

    async def complete_onboarding(
        self,
        profile: Dict[str, Any],
        user_id: Optional[str] = None,
    ) -> DomainRecord:
        """
        Create the local user profile and announce that onboarding is done.

        Raises:
            pydantic.ValidationError: If the profile payload is invalid
            ProfileAlreadyExistsError: If a profile already exists
        """
        record = await self._mutations.create(EntityType.USERS, profile, entity_id=user_id)
        logger.info(f"Onboarding completed for user {record.id}")
        self._events.publish(OnboardingCompleted(user_id=record.id))
        return record
