"""Remote sync gateway: PostgREST upsert/fetch plus anonymous identity.

Requires a Supabase-style backend:
- ``POST /auth/v1/signup`` with an empty body issues an anonymous session
- ``/rest/v1/<table>`` exposes one table per record kind, keyed by ``user_id``

The gateway never retries; the offline queue owns retry and backoff.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import aiohttp

from thyro.models import EntityKind

if TYPE_CHECKING:
    from thyro.config import RemoteConfig
    from thyro.persistence.local_store import LocalStore

logger = logging.getLogger(__name__)

SESSION_RECORD = "session"


class GatewayError(RuntimeError):
    """The backend could not issue or confirm an identity."""


class PullStatus(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True)
class PullResult:
    status: PullStatus
    record: dict[str, Any] | None = None
    error: str | None = None

    @property
    def found(self) -> bool:
        return self.status is PullStatus.FOUND

    @classmethod
    def failed(cls, error: str) -> PullResult:
        return cls(PullStatus.ERROR, error=error)


@runtime_checkable
class SyncGateway(Protocol):
    """What the stores and the queue need from a remote backend."""

    async def push(self, kind: EntityKind, record: dict[str, Any]) -> bool:
        """Upsert ``record`` keyed by its owner id. True when the remote accepted it."""
        ...

    async def pull(self, kind: EntityKind, owner_id: str) -> PullResult:
        """Fetch at most one record owned by ``owner_id``."""
        ...

    async def ensure_session(self) -> str:
        """Return the owner id, signing in anonymously on first use."""
        ...

    def reset_session(self) -> None: ...

    async def close(self) -> None: ...


class SupabaseGateway:
    """SyncGateway over PostgREST using aiohttp."""

    def __init__(self, config: RemoteConfig, store: LocalStore) -> None:
        self._config = config
        self._store = store
        self._http: aiohttp.ClientSession | None = None
        self._auth: dict[str, Any] | None = store.load_record(SESSION_RECORD)
        self._tables = {
            EntityKind.PROFILE: config.profile_table,
            EntityKind.CONFIG: config.config_table,
        }

    @property
    def owner_id(self) -> str | None:
        if self._auth:
            return self._auth.get("user_id")
        return None

    # ── HTTP plumbing ─────────────────────────────────────────

    def _client(self) -> aiohttp.ClientSession:
        if self._http is None or self._http.closed:
            timeout = aiohttp.ClientTimeout(total=self._config.timeout)
            self._http = aiohttp.ClientSession(timeout=timeout)
        return self._http

    def _headers(self, **extra: str) -> dict[str, str]:
        token = (self._auth or {}).get("access_token") or self._config.anon_key
        headers = {
            "apikey": self._config.anon_key,
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        headers.update(extra)
        return headers

    def _table_url(self, kind: EntityKind) -> str:
        return f"{self._config.url}/rest/v1/{self._tables[kind]}"

    # ── Identity ──────────────────────────────────────────────

    async def ensure_session(self) -> str:
        if self.owner_id:
            return self.owner_id
        if not self._config.enabled:
            raise GatewayError("Remote backend not configured")

        url = f"{self._config.url}/auth/v1/signup"
        try:
            async with self._client().post(url, json={}, headers=self._headers()) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    raise GatewayError(f"Anonymous sign-in failed ({resp.status}): {body[:200]}")
                data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise GatewayError(f"Anonymous sign-in failed: {e}") from e

        user = data.get("user") if isinstance(data, dict) else None
        user_id = user.get("id") if isinstance(user, dict) else None
        if not user_id:
            raise GatewayError("Anonymous sign-in returned no user id")

        self._auth = {
            "user_id": user_id,
            "access_token": data.get("access_token", ""),
            "refresh_token": data.get("refresh_token", ""),
        }
        self._store.save_record(SESSION_RECORD, self._auth)
        logger.info("Signed in anonymously as %s", user_id)
        return user_id

    def reset_session(self) -> None:
        """Forget the anonymous identity (account deletion)."""
        if self._auth:
            logger.info("Resetting session for %s", self._auth.get("user_id"))
        self._auth = None
        self._store.delete_record(SESSION_RECORD)

    # ── Records ───────────────────────────────────────────────

    async def push(self, kind: EntityKind, record: dict[str, Any]) -> bool:
        if not self._config.enabled:
            logger.debug("Remote disabled, not pushing %s", kind.value)
            return False
        headers = self._headers(Prefer="resolution=merge-duplicates,return=minimal")
        try:
            async with self._client().post(
                self._table_url(kind),
                params={"on_conflict": "user_id"},
                json=[record],
                headers=headers,
            ) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    logger.warning("Push %s rejected (%d): %s", kind.value, resp.status, body[:200])
                    return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Push %s failed: %s", kind.value, e)
            return False
        logger.info("Pushed %s for %s", kind.value, record.get("user_id"))
        return True

    async def pull(self, kind: EntityKind, owner_id: str) -> PullResult:
        if not self._config.enabled:
            return PullResult.failed("remote disabled")
        params = {"select": "*", "user_id": f"eq.{owner_id}", "limit": "1"}
        try:
            async with self._client().get(
                self._table_url(kind), params=params, headers=self._headers()
            ) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    logger.warning("Pull %s failed (%d): %s", kind.value, resp.status, body[:200])
                    return PullResult.failed(f"HTTP {resp.status}")
                rows = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning("Pull %s failed: %s", kind.value, e)
            return PullResult.failed(str(e) or type(e).__name__)

        if not isinstance(rows, list):
            return PullResult.failed("unexpected response shape")
        if not rows:
            return PullResult(PullStatus.NOT_FOUND)
        return PullResult(PullStatus.FOUND, record=rows[0])

    async def close(self) -> None:
        if self._http is not None and not self._http.closed:
            await self._http.close()
