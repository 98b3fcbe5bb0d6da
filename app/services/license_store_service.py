"""
Issued license storage

`LicenseStore` is the keyed store behind the payment-completion service.
The in-memory implementation suits single-process deployments and tests;
the SQLite implementation survives restarts.
"""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from app.database import session_scope
from app.models import IssuedLicenseRecord
from app.utils.timezone import ensure_utc


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class IssuedLicense:
    """License issued to a device; immutable so concurrent readers never see a partial record."""
    device_id: str
    license_key: str
    issued_at: datetime
    session_id: str | None = None
    customer_email: str | None = None


class LicenseStore(ABC):
    """Keyed store of issued licenses (one per device id)."""

    @abstractmethod
    async def put(self, record: IssuedLicense) -> None:
        """Insert or overwrite the license for record.device_id"""

    @abstractmethod
    async def get_by_key(self, device_id: str) -> IssuedLicense | None:
        """Return the license issued to a device, if any"""

    @abstractmethod
    async def purge_older_than(self, cutoff: datetime) -> int:
        """Delete licenses issued before cutoff; returns the number deleted"""


class InMemoryLicenseStore(LicenseStore):
    """Mutex-guarded dict of immutable records."""

    def __init__(self):
        self._records: dict[str, IssuedLicense] = {}
        self._lock = asyncio.Lock()

    async def put(self, record: IssuedLicense) -> None:
        async with self._lock:
            self._records[record.device_id] = record

    async def get_by_key(self, device_id: str) -> IssuedLicense | None:
        async with self._lock:
            return self._records.get(device_id)

    async def purge_older_than(self, cutoff: datetime) -> int:
        async with self._lock:
            expired = [key for key, record in self._records.items() if record.issued_at < cutoff]
            for key in expired:
                del self._records[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._records)


class SqlLicenseStore(LicenseStore):
    """License store backed by the issued_licenses table (requires init_db())."""

    async def put(self, record: IssuedLicense) -> None:
        values = {
            "device_id": record.device_id,
            "license_key": record.license_key,
            "issued_at": ensure_utc(record.issued_at),
            "session_id": record.session_id,
            "customer_email": record.customer_email,
        }
        stmt = sqlite_insert(IssuedLicenseRecord).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[IssuedLicenseRecord.device_id],
            set_={key: value for key, value in values.items() if key != "device_id"},
        )
        async with session_scope() as session:
            await session.execute(stmt)

    async def get_by_key(self, device_id: str) -> IssuedLicense | None:
        async with session_scope() as session:
            row = await session.get(IssuedLicenseRecord, device_id)
            if row is None:
                return None
            return IssuedLicense(
                device_id=row.device_id,
                license_key=row.license_key,
                # SQLite drops tzinfo on the way back
                issued_at=ensure_utc(row.issued_at),
                session_id=row.session_id,
                customer_email=row.customer_email,
            )

    async def purge_older_than(self, cutoff: datetime) -> int:
        async with session_scope() as session:
            result = await session.execute(
                select(IssuedLicenseRecord.device_id).where(IssuedLicenseRecord.issued_at < ensure_utc(cutoff))
            )
            expired = list(result.scalars().all())
            if expired:
                await session.execute(
                    delete(IssuedLicenseRecord).where(IssuedLicenseRecord.device_id.in_(expired))
                )
        logger.info("Purged %s issued licenses older than %s", len(expired), cutoff.date())
        return len(expired)
