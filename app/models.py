"""
SQLAlchemy ORM Models for the license service

This module defines the durable table behind the issued-license store.
"""
from datetime import datetime
from sqlalchemy import String, DateTime, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models"""
    pass


class IssuedLicenseRecord(Base):
    """One issued license per device (last write wins)"""
    __tablename__ = "issued_licenses"

    device_id: Mapped[str] = mapped_column(String, primary_key=True)
    license_key: Mapped[str] = mapped_column(String(16), nullable=False)
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    session_id: Mapped[str | None] = mapped_column(String, nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        Index("idx_issued_licenses_issued_at", "issued_at"),
    )

    def __repr__(self) -> str:
        return f"<IssuedLicenseRecord(device_id={self.device_id}, issued_at={self.issued_at})>"
