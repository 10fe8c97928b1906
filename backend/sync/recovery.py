"""
Profile recovery.

A user can attach a profile name and a 4-digit PIN to their cloud profile
and later restore everything onto a fresh device with those credentials.
All four operations are user-initiated one-shot calls, so transient errors
are retried in place with a short tenacity policy instead of through the
outbound queue.
"""

import logging
import re
from typing import Callable, Optional

from application.exceptions import ProfileAlreadyExistsError, RemoteUnavailableError
from application.ports import LocalStore, RemoteSyncClient
from backend.sync.coordinator import SyncCoordinator
from backend.sync.retry import (
    DEFAULT_MAX_WAIT_SECONDS,
    DEFAULT_MIN_WAIT_SECONDS,
    one_shot_retrying,
)
from domain.models import DomainRecord, EntityType

logger = logging.getLogger(__name__)

PIN_PATTERN = re.compile(r"^\d{4}$")
PROFILE_NAME_MAX_LENGTH = 64


def validate_pin(pin: str) -> str:
    if not PIN_PATTERN.match(pin or ""):
        raise ValueError("PIN must be exactly 4 digits")
    return pin


def normalize_profile_name(name: str) -> str:
    """Trim surrounding whitespace; names compare case-insensitively remotely."""
    name = (name or "").strip()
    if not name:
        raise ValueError("Profile name cannot be empty")
    if len(name) > PROFILE_NAME_MAX_LENGTH:
        raise ValueError(f"Profile name cannot exceed {PROFILE_NAME_MAX_LENGTH} characters")
    return name


class ProfileRecoveryService:
    """
    Register, verify and restore profiles through the remote backend.

    Args:
        remote: Remote sync client
        coordinator: Sync coordinator (owns the restore pull)
        store: Local durable store
        is_online: Returns the last known connectivity
        max_attempts: Attempts per remote call for transient errors
        min_wait_seconds, max_wait_seconds: Bounds of the exponential wait
    """

    def __init__(
        self,
        remote: RemoteSyncClient,
        coordinator: SyncCoordinator,
        store: LocalStore,
        *,
        is_online: Callable[[], bool],
        max_attempts: int = 3,
        min_wait_seconds: float = DEFAULT_MIN_WAIT_SECONDS,
        max_wait_seconds: float = DEFAULT_MAX_WAIT_SECONDS,
    ) -> None:
        self._remote = remote
        self._coordinator = coordinator
        self._store = store
        self._is_online = is_online
        self._max_attempts = max_attempts
        self._min_wait = min_wait_seconds
        self._max_wait = max_wait_seconds

    @property
    def is_available(self) -> bool:
        return self._remote.is_configured and self._is_online()

    async def check_profile_name_available(self, name: str) -> bool:
        """
        True if no remote profile uses `name`.

        Offline or local-only devices get True; the name is checked again
        when the profile is registered.
        """
        name = normalize_profile_name(name)
        if not self.is_available:
            return True
        async for attempt in self._retrying():
            with attempt:
                return await self._remote.check_profile_name_available(name)

    async def register_profile(self, user_id: str, name: str, pin: str) -> bool:
        """
        Attach a recovery name and PIN to the remote profile.

        Returns:
            False when the backend is unavailable or refused the name
        """
        name = normalize_profile_name(name)
        validate_pin(pin)
        if not self.is_available:
            logger.warning("Cannot register profile: offline or not configured")
            return False
        async for attempt in self._retrying():
            with attempt:
                registered = await self._remote.register_profile(user_id, name, pin)
        logger.info(f"Profile registration for user {user_id}: {registered}")
        return registered

    async def restore(self, name: str, pin: str) -> Optional[DomainRecord]:
        """
        Verify credentials and rebuild local data from the cloud.

        Returns:
            The restored user profile, or None if the name/PIN did not match

        Raises:
            RemoteUnavailableError: If the backend is not configured or offline
            ProfileAlreadyExistsError: If this device already has a profile
        """
        name = normalize_profile_name(name)
        validate_pin(pin)
        self._require_remote()

        if await self._store.count(EntityType.USERS) > 0:
            raise ProfileAlreadyExistsError("A local profile already exists on this device")

        async for attempt in self._retrying():
            with attempt:
                profile = await self._remote.verify_recovery(name, pin)

        if profile is None:
            logger.info("Recovery credentials did not match any profile")
            return None

        report = await self._coordinator.restore(profile)
        logger.info(f"Profile {profile.id} recovered ({report.pulled} records pulled)")
        return profile

    async def change_pin(self, user_id: str, current_pin: str, new_pin: str) -> bool:
        """
        Replace the recovery PIN.

        Returns:
            False if the current PIN was wrong

        Raises:
            RemoteUnavailableError: If the backend is not configured or offline
        """
        validate_pin(current_pin)
        validate_pin(new_pin)
        self._require_remote()
        async for attempt in self._retrying():
            with attempt:
                return await self._remote.change_recovery_pin(user_id, current_pin, new_pin)

    def _require_remote(self) -> None:
        if not self._remote.is_configured:
            raise RemoteUnavailableError("Cloud sync is not configured")
        if not self._is_online():
            raise RemoteUnavailableError("No internet connection")

    def _retrying(self):
        return one_shot_retrying(
            max_attempts=self._max_attempts,
            min_wait_seconds=self._min_wait,
            max_wait_seconds=self._max_wait,
        )
