"""Per-tenant sequential serial numbers for new inventory variants.

Serials are allocated optimistically: read the tenant's current maximum,
stamp the batch with the following integers, and insert. The store's unique
constraint on ``(tenant_id, serial_number)`` rejects a batch that lost a race
with a concurrent writer, in which case the whole batch is re-stamped from the
new maximum after a short backoff. Any other insert failure degrades to one
insert per record so that a single bad row does not sink the rest.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from app.core.config import get_settings
from app.models.variant import SERIAL_CEILING
from app.services.variant_store import SerialConflictError, VariantStore, VariantStoreError

logger = logging.getLogger(__name__)


class SerialAllocationError(Exception):
    """Base class for allocation failures reported to callers."""


class SerialLimitExceededError(SerialAllocationError):
    def __init__(self, tenant_id: uuid.UUID) -> None:
        super().__init__(
            f"Serial number limit reached. Maximum is {SERIAL_CEILING} variants per tenant."
        )
        self.tenant_id = tenant_id


class SerialRetriesExhaustedError(SerialAllocationError):
    def __init__(self, attempts: int) -> None:
        super().__init__(
            f"Failed to insert variants after {attempts} attempts (serial number conflicts)"
        )
        self.attempts = attempts


class AllocState(StrEnum):
    COMPUTE_START = "compute_start"
    BULK_INSERT = "bulk_insert"
    COLLISION_RETRY = "collision_retry"
    FALLBACK = "fallback"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass
class AllocationResult:
    """Outcome of one ``allocate_batch`` call.

    ``inserted_count`` is always the number of rows durably committed, even
    when ``error`` is set.
    """

    inserted_count: int = 0
    serials: list[int] = field(default_factory=list)
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SerialAllocator:
    def __init__(
        self,
        store: VariantStore,
        max_attempts: int | None = None,
        retry_base_delay: float | None = None,
    ) -> None:
        settings = get_settings()
        self.store = store
        if max_attempts is None:
            max_attempts = settings.serial_max_attempts
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        if retry_base_delay is None:
            retry_base_delay = settings.serial_retry_base_delay_ms / 1000
        self.retry_base_delay = retry_base_delay

    async def next_serial_number(self, tenant_id: uuid.UUID) -> int:
        """Return one more than the tenant's highest serial, or 1.

        Read-only and not atomic with any insert. Raises
        SerialLimitExceededError once the maximum reaches ``SERIAL_CEILING - 1``.
        """
        raw = await self.store.max_serial(tenant_id)
        if raw is None:
            return 1
        try:
            current = int(raw)
        except (TypeError, ValueError):
            logger.warning("Unparseable max serial %r for tenant %s", raw, tenant_id)
            return 1
        if current < 0:
            return 1
        if current >= SERIAL_CEILING - 1:
            raise SerialLimitExceededError(tenant_id)
        return current + 1

    async def allocate_batch(
        self,
        records: Sequence[Mapping[str, Any]],
        tenant_id: uuid.UUID,
    ) -> AllocationResult:
        """Insert ``records`` for ``tenant_id`` with consecutive serial numbers."""
        records = list(records)
        result = AllocationResult()
        if not records:
            return result

        state = AllocState.COMPUTE_START
        attempt = 0
        start = 0

        while True:
            if state is AllocState.COMPUTE_START:
                attempt += 1
                try:
                    start = await self.next_serial_number(tenant_id)
                    self._check_room(tenant_id, start, len(records) - result.inserted_count)
                except SerialLimitExceededError as exc:
                    result.error = exc
                    state = AllocState.FAILURE
                    continue
                except VariantStoreError as exc:
                    if attempt >= self.max_attempts:
                        result.error = exc
                        state = AllocState.FAILURE
                        continue
                    logger.warning(
                        "Max serial lookup failed for tenant %s, retrying (attempt %d/%d): %s",
                        tenant_id, attempt, self.max_attempts, exc,
                    )
                    await self._backoff(attempt)
                    continue
                state = AllocState.BULK_INSERT

            elif state is AllocState.BULK_INSERT:
                pending = [
                    _stamp(record, tenant_id, start + i)
                    for i, record in enumerate(records[result.inserted_count:])
                ]
                try:
                    await self.store.insert_many(pending)
                except SerialConflictError:
                    state = AllocState.COLLISION_RETRY
                except VariantStoreError as exc:
                    logger.warning(
                        "Batch insert failed for tenant %s, trying individual inserts: %s",
                        tenant_id, exc,
                    )
                    state = AllocState.FALLBACK
                else:
                    result.inserted_count += len(pending)
                    result.serials.extend(row["serial_number"] for row in pending)
                    state = AllocState.SUCCESS

            elif state is AllocState.COLLISION_RETRY:
                if attempt >= self.max_attempts:
                    result.error = SerialRetriesExhaustedError(attempt)
                    state = AllocState.FAILURE
                    continue
                logger.info(
                    "Serial number conflict for tenant %s, retrying (attempt %d/%d)",
                    tenant_id, attempt, self.max_attempts,
                )
                await self._backoff(attempt)
                state = AllocState.COMPUTE_START

            elif state is AllocState.FALLBACK:
                state = await self._insert_individually(records, tenant_id, result)

            elif state is AllocState.SUCCESS:
                return result

            else:
                logger.error(
                    "Serial allocation failed for tenant %s after %d/%d records: %s",
                    tenant_id, result.inserted_count, len(records), result.error,
                )
                return result

    async def _insert_individually(
        self,
        records: list[Mapping[str, Any]],
        tenant_id: uuid.UUID,
        result: AllocationResult,
    ) -> AllocState:
        """Insert the remaining records one at a time.

        A serial conflict on a single record is retried within the same attempt
        budget; any other failure stops the loop.
        """
        for index in range(result.inserted_count, len(records)):
            attempt = 0
            while True:
                attempt += 1
                try:
                    serial = await self.next_serial_number(tenant_id)
                    await self.store.insert_one(_stamp(records[index], tenant_id, serial))
                except SerialConflictError:
                    if attempt >= self.max_attempts:
                        result.error = SerialRetriesExhaustedError(attempt)
                        return AllocState.FAILURE
                    await self._backoff(attempt)
                    continue
                except SerialLimitExceededError as exc:
                    result.error = exc
                    return AllocState.FAILURE
                except VariantStoreError as exc:
                    result.error = VariantStoreError(
                        f"Failed to insert variant {index + 1}: {exc}"
                    )
                    return AllocState.FAILURE
                result.inserted_count += 1
                result.serials.append(serial)
                break
        return AllocState.SUCCESS

    def _check_room(self, tenant_id: uuid.UUID, start: int, count: int) -> None:
        if start + count - 1 >= SERIAL_CEILING:
            raise SerialLimitExceededError(tenant_id)

    async def _backoff(self, attempt: int) -> None:
        if self.retry_base_delay > 0:
            await asyncio.sleep(self.retry_base_delay * attempt)


def _stamp(record: Mapping[str, Any], tenant_id: uuid.UUID, serial: int) -> dict[str, Any]:
    return {**record, "serial_number": serial, "tenant_id": tenant_id}
