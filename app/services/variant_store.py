"""Variant persistence adapters used by the serial allocator.

Two implementations share the ``VariantStore`` protocol:

- ``SqlVariantStore`` talks to the database through an ``AsyncSession`` and
  relies on the ``uq_variants_tenant_serial`` unique constraint.
- ``MemoryVariantStore`` keeps rows in process. It enforces the same
  uniqueness and all-or-nothing semantics and accepts scripted delays and
  failures, which makes races reproducible in tests.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Sequence
from typing import Any, Protocol

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.variant import SERIAL_UNIQUE_CONSTRAINT, Variant

logger = logging.getLogger(__name__)

# Postgres SQLSTATE for unique_violation
_UNIQUE_VIOLATION = "23505"

_VARIANT_COLUMNS = frozenset(Variant.model_fields)


class VariantStoreError(Exception):
    """Any datastore failure that is not a serial collision."""


class SerialConflictError(VariantStoreError):
    """Another writer already holds one of the serial numbers."""


class VariantStore(Protocol):
    async def max_serial(self, tenant_id: uuid.UUID) -> Any: ...

    async def insert_many(self, rows: Sequence[dict[str, Any]]) -> None: ...

    async def insert_one(self, row: dict[str, Any]) -> None: ...


def is_serial_conflict(exc: IntegrityError) -> bool:
    """True when an IntegrityError comes from the per-tenant serial constraint."""
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    message = str(orig)
    if SERIAL_UNIQUE_CONSTRAINT in message:
        return True
    if code == _UNIQUE_VIOLATION:
        return True
    # SQLite reports the columns rather than the constraint name
    return "UNIQUE constraint failed" in message and "serial_number" in message


# ── SQL adapter ──────────────────────────────────────────────

class SqlVariantStore:
    """VariantStore backed by the ``variants`` table."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def max_serial(self, tenant_id: uuid.UUID) -> int | None:
        stmt = select(func.max(Variant.serial_number)).where(
            Variant.tenant_id == tenant_id
        )
        try:
            result = await self.session.execute(stmt)
        except (SQLAlchemyError, TimeoutError) as exc:
            raise VariantStoreError(f"Failed to get max serial number: {exc}") from exc
        return result.scalar_one_or_none()

    async def insert_many(self, rows: Sequence[dict[str, Any]]) -> None:
        await self._insert([_build_variant(row) for row in rows])

    async def insert_one(self, row: dict[str, Any]) -> None:
        await self._insert([_build_variant(row)])

    async def _insert(self, variants: list[Variant]) -> None:
        self.session.add_all(variants)
        try:
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            if is_serial_conflict(exc):
                raise SerialConflictError(str(exc.orig)) from exc
            raise VariantStoreError(str(exc.orig)) from exc
        except (SQLAlchemyError, TimeoutError) as exc:
            await self.session.rollback()
            raise VariantStoreError(str(exc)) from exc


def _build_variant(row: dict[str, Any]) -> Variant:
    # Table models skip validation and would drop unknown keys without a word
    unknown = set(row) - _VARIANT_COLUMNS
    if unknown:
        raise VariantStoreError(f"Unknown variant fields: {', '.join(sorted(unknown))}")
    return Variant(**row)


# ── In-memory adapter ────────────────────────────────────────

class MemoryVariantStore:
    """Process-local VariantStore.

    ``delay`` is awaited before every insert (after the caller has read the
    current maximum), which opens a window for concurrent writers to collide.
    ``failures`` is a queue of exceptions raised by successive insert calls
    before any row is written; ``None`` entries let the call through.
    """

    def __init__(self, delay: float = 0.0) -> None:
        self.rows: list[dict[str, Any]] = []
        self.delay = delay
        self.failures: list[Exception | None] = []
        self.max_serial_calls = 0
        self.insert_calls: list[int] = []

    async def max_serial(self, tenant_id: uuid.UUID) -> Any:
        self.max_serial_calls += 1
        serials = [r["serial_number"] for r in self.rows if r["tenant_id"] == tenant_id]
        return max(serials) if serials else None

    async def insert_many(self, rows: Sequence[dict[str, Any]]) -> None:
        await self._insert(list(rows))

    async def insert_one(self, row: dict[str, Any]) -> None:
        await self._insert([row])

    def serials_for(self, tenant_id: uuid.UUID) -> list[int]:
        return [r["serial_number"] for r in self.rows if r["tenant_id"] == tenant_id]

    async def _insert(self, rows: list[dict[str, Any]]) -> None:
        self.insert_calls.append(len(rows))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures:
            failure = self.failures.pop(0)
            if failure is not None:
                raise failure

        taken = {(r["tenant_id"], r["serial_number"]) for r in self.rows}
        for row in rows:
            key = (row["tenant_id"], row["serial_number"])
            if key in taken:
                raise SerialConflictError(
                    f"duplicate key value violates unique constraint "
                    f'"{SERIAL_UNIQUE_CONSTRAINT}"'
                )
            taken.add(key)
        self.rows.extend(dict(r) for r in rows)
        logger.debug("Memory store committed %d rows", len(rows))
