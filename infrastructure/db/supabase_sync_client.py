"""
Supabase Remote Sync Client.

Implements the RemoteSyncClient port against a Supabase project. One table
per entity type; every row carries the payload columns plus `id`,
`updated_at`, a `deleted` tombstone flag and (except on `users`, whose `id`
is the owner) a `user_id` owner column.

Push is read-compare-upsert:
- remote `updated_at` newer            -> conflict(remote)
- equal timestamp, same payload        -> accepted (retry of an applied push)
- equal timestamp, different payload  -> conflict(remote), remote wins the tie
- otherwise                            -> upsert on `id` (idempotent)

A delete is the upsert of a tombstone. Pull pages through
`updated_at >= since` ordered ascending.

The supabase-py client is synchronous; every call runs in the threadpool
with a bounded wait, and a timeout counts as a transient network error.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, TypeVar

from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool
from supabase import Client, create_client

from application.exceptions import (
    AuthenticationError,
    RejectedPayloadError,
    RemoteUnavailableError,
    SyncError,
    TransientNetworkError,
)
from backend.sync.config import SyncClientConfig
from backend.sync.retry import is_auth_error, is_retryable_error
from domain.models import (
    PAYLOAD_MODELS,
    DomainRecord,
    EntityType,
    PushResult,
    SyncQueueEntry,
    utc_now,
    validate_payload,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def owner_column(entity_type: EntityType) -> str:
    return "id" if entity_type == EntityType.USERS else "user_id"


def normalize_payload(entity_type: EntityType, row: Dict[str, Any]) -> Dict[str, Any]:
    """
    Payload columns of a row in the JSON form the local store writes.

    PostgREST returns timestamptz as `+00:00` where pydantic dumps `Z`, so
    rows go back through the entity model before any comparison. Columns
    the model does not declare (owner, recovery hash, bookkeeping) are
    dropped. A row the model rejects keeps its raw payload columns.
    """
    model = PAYLOAD_MODELS[entity_type]
    payload = {k: v for k, v in row.items() if k in model.model_fields}
    try:
        return validate_payload(entity_type, payload)
    except ValidationError as e:
        logger.warning(
            f"Remote {entity_type.value} row {row.get('id')} does not match its model "
            f"({e.error_count()} errors), keeping raw columns"
        )
        return payload


class SupabaseSyncClient:
    """
    Supabase implementation of RemoteSyncClient.

    Args:
        config: Sync client configuration (URL, key, token provider, timeouts)
        client: Pre-built Supabase client (tests); created lazily otherwise
    """

    def __init__(self, config: SyncClientConfig, client: Optional[Client] = None) -> None:
        self._config = config
        self._client = client
        self._user_id: Optional[str] = None
        if client is not None:
            self._apply_token(client)

    @property
    def is_configured(self) -> bool:
        return self._client is not None or self._config.is_configured

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    def bind_user(self, user_id: str) -> None:
        if self._user_id != user_id:
            logger.info(f"Remote sync bound to user {user_id}")
        self._user_id = user_id

    async def reauthenticate(self) -> None:
        """Re-read the bearer token from the token provider."""
        client = self._get_client()
        token = self._apply_token(client)
        if token is None:
            logger.warning("Re-authenticated without a bearer token (anonymous access)")
        else:
            logger.info("Remote credentials refreshed")

    # =========================================================================
    # Push / pull
    # =========================================================================

    async def push(self, entry: SyncQueueEntry) -> PushResult:
        local = entry.snapshot()
        table = entry.entity_type.value
        user_id = self._require_user()

        try:
            row = await self._call("push", self._select_row, table, entry.entity_type, entry.entity_id)
            if row is not None:
                remote = self.row_to_record(entry.entity_type, row)
                if remote.updated_at > local.updated_at:
                    return PushResult.conflict(remote)
                if remote.updated_at == local.updated_at:
                    if self._same_payload(local, remote):
                        logger.debug(f"Push #{entry.sequence} already applied remotely")
                        return PushResult.accepted()
                    return PushResult.conflict(remote)

            await self._call("push", self._upsert_row, table, self.record_to_row(local, user_id))
        except RejectedPayloadError as e:
            return PushResult.rejected(e.reason)

        return PushResult.accepted()

    async def pull(
        self,
        entity_type: EntityType,
        since: Optional[datetime],
    ) -> AsyncIterator[DomainRecord]:
        entity_type = EntityType(entity_type)
        user_id = self._require_user()
        page_size = self._config.pull_page_size
        offset = 0

        while True:
            rows = await self._call(
                "pull",
                self._select_page,
                entity_type,
                user_id,
                since,
                offset,
                page_size,
            )
            for row in rows:
                yield self.row_to_record(entity_type, row)
            if len(rows) < page_size:
                return
            offset += page_size

    async def fetch(self, entity_type: EntityType, entity_id: str) -> Optional[DomainRecord]:
        entity_type = EntityType(entity_type)
        row = await self._call("fetch", self._select_row, entity_type.value, entity_type, entity_id)
        return self.row_to_record(entity_type, row) if row is not None else None

    # =========================================================================
    # Profile recovery (RPCs)
    # =========================================================================

    async def check_profile_name_available(self, profile_name: str) -> bool:
        data = await self._call("check_profile_name_available", self._rpc,
                                "check_profile_name_available", {"p_name": profile_name})
        return data is True

    async def register_profile(self, user_id: str, profile_name: str, pin: str) -> bool:
        data = await self._call("register_profile", self._rpc, "register_profile", {
            "p_user_id": user_id,
            "p_profile_name": profile_name,
            "p_pin": pin,
        })
        return data is True

    async def verify_recovery(self, profile_name: str, pin: str) -> Optional[DomainRecord]:
        data = await self._call("verify_recovery", self._rpc, "verify_recovery", {
            "p_profile_name": profile_name,
            "p_pin": pin,
        })
        # Unique names: at most one match
        if not data:
            return None
        row = dict(data[0])
        row.setdefault("updated_at", row.get("weight_updated_at") or utc_now().isoformat())
        return self.row_to_record(EntityType.USERS, row)

    async def change_recovery_pin(self, user_id: str, current_pin: str, new_pin: str) -> bool:
        data = await self._call("change_recovery_pin", self._rpc, "change_recovery_pin", {
            "p_user_id": user_id,
            "p_current_pin": current_pin,
            "p_new_pin": new_pin,
        })
        return data is True

    # =========================================================================
    # Row mapping
    # =========================================================================

    @staticmethod
    def record_to_row(record: DomainRecord, user_id: str) -> Dict[str, Any]:
        dumped = record.model_dump(mode="json")
        row = dict(dumped["data"])
        row["id"] = record.id
        row["updated_at"] = dumped["updated_at"]
        row["deleted"] = record.deleted
        if record.entity_type != EntityType.USERS:
            row["user_id"] = user_id
        return row

    @staticmethod
    def row_to_record(entity_type: EntityType, row: Dict[str, Any]) -> DomainRecord:
        return DomainRecord(
            entity_type=entity_type,
            id=str(row["id"]),
            updated_at=row["updated_at"],
            deleted=bool(row.get("deleted") or False),
            data=normalize_payload(entity_type, row),
        )

    @staticmethod
    def _same_payload(local: DomainRecord, remote: DomainRecord) -> bool:
        if local.deleted != remote.deleted:
            return False
        return normalize_payload(local.entity_type, local.data) == remote.data

    # =========================================================================
    # Blocking Supabase calls (run in the threadpool)
    # =========================================================================

    def _select_row(self, table: str, entity_type: EntityType, entity_id: str) -> Optional[Dict[str, Any]]:
        query = self._get_client().table(table).select("*").eq("id", entity_id)
        if self._user_id is not None and entity_type != EntityType.USERS:
            query = query.eq("user_id", self._user_id)
        result = query.limit(1).execute()
        return result.data[0] if result.data else None

    def _upsert_row(self, table: str, row: Dict[str, Any]) -> None:
        self._get_client().table(table).upsert(row, on_conflict="id").execute()

    def _select_page(
        self,
        entity_type: EntityType,
        user_id: str,
        since: Optional[datetime],
        offset: int,
        limit: int,
    ) -> List[Dict[str, Any]]:
        query = self._get_client().table(entity_type.value) \
            .select("*") \
            .eq(owner_column(entity_type), user_id)
        if since is not None:
            query = query.gte("updated_at", since.isoformat())
        result = query \
            .order("updated_at") \
            .order("id") \
            .range(offset, offset + limit - 1) \
            .execute()
        return result.data or []

    def _rpc(self, name: str, params: Dict[str, Any]) -> Any:
        return self._get_client().rpc(name, params).execute().data

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _call(self, operation: str, fn: Callable[..., T], *args: Any) -> T:
        """Run a blocking call with a bounded wait and map its errors."""
        timeout = self._config.request_timeout
        try:
            return await asyncio.wait_for(run_in_threadpool(fn, *args), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise TransientNetworkError(f"{operation} timed out after {timeout}s") from e
        except SyncError:
            raise
        except Exception as e:
            raise self._classify(operation, e) from e

    @staticmethod
    def _classify(operation: str, exc: Exception) -> SyncError:
        if is_auth_error(exc):
            logger.error(f"Remote {operation} refused credentials: {exc}")
            return AuthenticationError(str(exc))
        if is_retryable_error(exc):
            logger.warning(f"Remote {operation} failed (retryable): {exc}")
            return TransientNetworkError(str(exc))
        logger.error(f"Remote {operation} rejected: {exc}")
        return RejectedPayloadError(f"{operation} failed: {exc}")

    def _get_client(self) -> Client:
        if self._client is None:
            if not self._config.is_configured:
                raise RemoteUnavailableError("Supabase is not configured")
            self._client = create_client(self._config.backend_url, self._config.api_key)
            self._apply_token(self._client)
        return self._client

    def _apply_token(self, client: Client) -> Optional[str]:
        token = self._config.auth_token_provider()
        if token:
            client.postgrest.auth(token)
        return token

    def _require_user(self) -> str:
        if self._user_id is None:
            raise RuntimeError("bind_user() must be called before push or pull")
        return self._user_id
