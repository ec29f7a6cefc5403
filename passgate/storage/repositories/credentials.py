"""Credential directory: username -> CredentialRecord, SQLite-backed."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from passgate.exceptions import DuplicateUserError, StorageError
from passgate.models.database import CredentialRecord

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


class CredentialDirectory:
    """Durable store of one credential record per username.

    Records are immutable: replacing one takes an explicit ``delete`` followed
    by ``put``.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def exists(self, username: str) -> bool:
        return await self.get(username) is not None

    async def get(self, username: str) -> CredentialRecord | None:
        async with AsyncSession(self._engine) as session:
            return await session.get(CredentialRecord, username)

    async def put(self, record: CredentialRecord) -> CredentialRecord:
        """Insert ``record``. Raises DuplicateUserError if the username is taken."""
        async with AsyncSession(self._engine) as session:
            try:
                if await session.get(CredentialRecord, record.username) is not None:
                    raise DuplicateUserError
                session.add(record)
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise DuplicateUserError from exc
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error("credential_store_failed", username=record.username, error=str(exc))
                raise StorageError from exc
            await session.refresh(record)
            logger.info("credential_stored", username=record.username)
            return record

    async def delete(self, username: str) -> bool:
        """Remove a user's record. Returns False if there was none."""
        async with AsyncSession(self._engine) as session:
            record = await session.get(CredentialRecord, username)
            if record is None:
                return False
            await session.delete(record)
            await session.commit()
            logger.info("credential_deleted", username=username)
            return True

    async def list(self) -> list[str]:
        """Return all registered usernames (sorted, for diagnostics)."""
        async with AsyncSession(self._engine) as session:
            stmt = select(CredentialRecord.username).order_by(col(CredentialRecord.username))
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def records(self) -> list[CredentialRecord]:
        """Return every record, for administrative export."""
        async with AsyncSession(self._engine) as session:
            stmt = select(CredentialRecord).order_by(col(CredentialRecord.username))
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def has_any(self) -> bool:
        async with AsyncSession(self._engine) as session:
            stmt = select(CredentialRecord).limit(1)
            result = await session.execute(stmt)
            return result.scalars().first() is not None
