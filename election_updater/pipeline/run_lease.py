"""Single-run lease for the update pipelines.

The lease is a store record (``update_lease``) holding a random token and
expiring after a TTL, so a crashed run cannot block later runs forever.
Release is token-checked: a run whose lease already expired and was taken
over by another run does not delete the newer lease.

The check-then-write in :meth:`RunLease.acquire` is not atomic across
processes; a read-back of the token narrows the window to the store's own
write ordering.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Callable

from pydantic import ValidationError

from election_updater.interfaces.store_provider import IStoreProvider
from election_updater.models.tracking import RunLeaseRecord
from election_updater.utils.logging import get_logger

LEASE_KEY = "update_lease"


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


class RunLease:
    """Acquire / release the ``update_lease`` record."""

    def __init__(
        self,
        store: IStoreProvider,
        ttl_seconds: int = 3600,
        holder: str = "daily_update",
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._store = store
        self._ttl = ttl_seconds
        self._holder = holder
        self._clock = clock
        self._token: str | None = None
        self._logger = get_logger(__name__)

    @property
    def held(self) -> bool:
        return self._token is not None

    @property
    def run_id(self) -> str | None:
        return self._token[:12] if self._token else None

    async def current(self) -> RunLeaseRecord | None:
        raw = await self._store.get(LEASE_KEY)
        if not raw:
            return None
        try:
            return RunLeaseRecord.model_validate_json(raw)
        except ValidationError:
            self._logger.warning("run_lease_corrupt")
            return None

    async def acquire(self) -> bool:
        """Take the lease; ``False`` if another run holds it."""
        existing = await self.current()
        if existing is not None:
            self._logger.info("run_lease_busy", holder=existing.holder,
                              acquired_at=existing.acquired_at.isoformat())
            return False

        token = uuid.uuid4().hex
        record = RunLeaseRecord(token=token, acquired_at=self._clock(), holder=self._holder)
        await self._store.put(LEASE_KEY, record.model_dump_json(by_alias=True), ttl=self._ttl)

        confirmed = await self.current()
        if confirmed is None or confirmed.token != token:
            self._logger.warning("run_lease_lost_race", holder=self._holder)
            return False
        self._token = token
        self._logger.info("run_lease_acquired", holder=self._holder, ttl_seconds=self._ttl)
        return True

    async def release(self) -> None:
        if self._token is None:
            return
        existing = await self.current()
        if existing is not None and existing.token == self._token:
            await self._store.delete(LEASE_KEY)
            self._logger.info("run_lease_released", holder=self._holder)
        else:
            self._logger.warning("run_lease_not_owned", holder=self._holder)
        self._token = None
