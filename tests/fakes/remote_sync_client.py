"""
Fake Remote Sync Client for Testing.

In-memory implementation of the RemoteSyncClient protocol that behaves like
the Supabase client: read-compare-upsert pushes keyed by (entity_type, id),
inclusive ascending pulls, and recovery credentials held in a dict.

Failure injection:
- push_errors: exceptions raised by the next pushes (FIFO)
- lose_next_ack: apply the next push remotely, then raise a transient error
- rejected_ids: ids whose pushes are rejected
- pull_error / pull_error_type / pull_error_after: fail a pull (of one
  entity type, or any) after N yielded records
"""
import asyncio
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional, Set, Tuple

from application.exceptions import TransientNetworkError
from domain.models import DomainRecord, EntityType, PushOutcome, PushResult, SyncQueueEntry


class FakeRemoteSyncClient:
    """In-memory fake of the remote backend."""

    def __init__(self, configured: bool = True):
        self.configured = configured
        self.records: Dict[Tuple[EntityType, str], DomainRecord] = {}
        self.user_id: Optional[str] = None

        # Observability for assertions
        self.push_log: List[SyncQueueEntry] = []
        self.push_results: List[PushResult] = []
        self.pull_calls: List[Tuple[EntityType, Optional[datetime]]] = []
        self.reauthenticate_calls = 0
        self.active_calls = 0
        self.max_active_calls = 0

        # Failure injection
        self.push_errors: List[Exception] = []
        self.lose_next_ack = False
        self.rejected_ids: Set[str] = set()
        self.pull_error: Optional[Exception] = None
        self.pull_error_type: Optional[EntityType] = None
        self.pull_error_after = 0
        self.reauthenticate_error: Optional[Exception] = None

        # Recovery: lower-cased name -> (user id, pin)
        self.credentials: Dict[str, Tuple[str, str]] = {}
        self.recovery_errors: List[Exception] = []

    # =========================================================================
    # Test helpers
    # =========================================================================

    def seed(self, *records: DomainRecord) -> None:
        for record in records:
            self.records[record.key] = record

    def get(self, entity_type: EntityType, entity_id: str) -> Optional[DomainRecord]:
        return self.records.get((entity_type, entity_id))

    def pushed_sequences(self, entity_id: Optional[str] = None) -> List[int]:
        return [
            e.sequence for e in self.push_log
            if entity_id is None or e.entity_id == entity_id
        ]

    # =========================================================================
    # RemoteSyncClient protocol
    # =========================================================================

    @property
    def is_configured(self) -> bool:
        return self.configured

    def bind_user(self, user_id: str) -> None:
        self.user_id = user_id

    async def reauthenticate(self) -> None:
        self.reauthenticate_calls += 1
        if self.reauthenticate_error is not None:
            raise self.reauthenticate_error

    async def push(self, entry: SyncQueueEntry) -> PushResult:
        self._enter()
        try:
            await asyncio.sleep(0)
            self.push_log.append(entry)
            if self.push_errors:
                raise self.push_errors.pop(0)
            result = self._apply_push(entry)
            if self.lose_next_ack:
                self.lose_next_ack = False
                raise TransientNetworkError("connection reset before response")
            self.push_results.append(result)
            return result
        finally:
            self._exit()

    def _apply_push(self, entry: SyncQueueEntry) -> PushResult:
        if entry.entity_id in self.rejected_ids:
            return PushResult.rejected("violates check constraint")
        local = entry.snapshot()
        remote = self.records.get(local.key)
        if remote is not None:
            if remote.updated_at > local.updated_at:
                return PushResult.conflict(remote)
            if remote.updated_at == local.updated_at:
                if remote.same_version(local):
                    return PushResult.accepted()
                return PushResult.conflict(remote)
        self.records[local.key] = local
        return PushResult.accepted()

    async def pull(
        self,
        entity_type: EntityType,
        since: Optional[datetime],
    ) -> AsyncIterator[DomainRecord]:
        self.pull_calls.append((entity_type, since))
        matching = sorted(
            (
                r for r in self.records.values()
                if r.entity_type == entity_type and (since is None or r.updated_at >= since)
            ),
            key=lambda r: (r.updated_at, r.id),
        )
        fail = self.pull_error is not None and self.pull_error_type in (None, entity_type)
        for index, record in enumerate(matching):
            if fail and index >= self.pull_error_after:
                error, self.pull_error = self.pull_error, None
                raise error
            await asyncio.sleep(0)
            yield record
        if fail and len(matching) <= self.pull_error_after:
            error, self.pull_error = self.pull_error, None
            raise error

    async def fetch(self, entity_type: EntityType, entity_id: str) -> Optional[DomainRecord]:
        return self.records.get((EntityType(entity_type), entity_id))

    async def check_profile_name_available(self, profile_name: str) -> bool:
        self._raise_recovery_error()
        return profile_name.lower() not in self.credentials

    async def register_profile(self, user_id: str, profile_name: str, pin: str) -> bool:
        self._raise_recovery_error()
        if profile_name.lower() in self.credentials:
            return False
        self.credentials[profile_name.lower()] = (user_id, pin)
        return True

    async def verify_recovery(self, profile_name: str, pin: str) -> Optional[DomainRecord]:
        self._raise_recovery_error()
        match = self.credentials.get(profile_name.lower())
        if match is None or match[1] != pin:
            return None
        return self.records.get((EntityType.USERS, match[0]))

    async def change_recovery_pin(self, user_id: str, current_pin: str, new_pin: str) -> bool:
        self._raise_recovery_error()
        for name, (uid, pin) in self.credentials.items():
            if uid == user_id and pin == current_pin:
                self.credentials[name] = (uid, new_pin)
                return True
        return False

    def _raise_recovery_error(self) -> None:
        if self.recovery_errors:
            raise self.recovery_errors.pop(0)

    def _enter(self) -> None:
        self.active_calls += 1
        self.max_active_calls = max(self.max_active_calls, self.active_calls)

    def _exit(self) -> None:
        self.active_calls -= 1

    @property
    def conflict_count(self) -> int:
        return sum(1 for r in self.push_results if r.outcome == PushOutcome.CONFLICT)
