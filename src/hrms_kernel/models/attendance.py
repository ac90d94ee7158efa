"""Clock record and retention audit models."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from hrms_kernel.models.base import Base, PortableJSON, TimestampMixin

EVENT_SLOTS = ("in_1", "out_1", "in_2", "out_2")
PHOTO_FIELDS = tuple(f"photo_{slot}" for slot in EVENT_SLOTS)
ADDRESS_FIELDS = tuple(f"address_{slot}" for slot in EVENT_SLOTS)
MEDIA_FIELDS = PHOTO_FIELDS + ADDRESS_FIELDS


class ClockRecord(Base, TimestampMixin):
    """Attendance for one employee on one work date.

    Event timestamps are local wall-clock times in the organisation's
    timezone. Photos and addresses are purged by the retention sweep; the
    record itself is kept.
    """

    __tablename__ = "clock_record"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employee_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("employee.id"), nullable=False
    )
    company_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    work_date: Mapped[date] = mapped_column(Date, nullable=False)

    clock_in_1: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    clock_out_1: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    clock_in_2: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    clock_out_2: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    location_in_1: Mapped[str | None] = mapped_column(String, nullable=True)
    location_out_1: Mapped[str | None] = mapped_column(String, nullable=True)
    location_in_2: Mapped[str | None] = mapped_column(String, nullable=True)
    location_out_2: Mapped[str | None] = mapped_column(String, nullable=True)

    photo_in_1: Mapped[str | None] = mapped_column(Text, nullable=True)
    photo_out_1: Mapped[str | None] = mapped_column(Text, nullable=True)
    photo_in_2: Mapped[str | None] = mapped_column(Text, nullable=True)
    photo_out_2: Mapped[str | None] = mapped_column(Text, nullable=True)

    face_detected_in_1: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    face_detected_out_1: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    face_detected_in_2: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    face_detected_out_2: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    address_in_1: Mapped[str | None] = mapped_column(Text, nullable=True)
    address_out_1: Mapped[str | None] = mapped_column(Text, nullable=True)
    address_in_2: Mapped[str | None] = mapped_column(Text, nullable=True)
    address_out_2: Mapped[str | None] = mapped_column(Text, nullable=True)

    total_work_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    overtime_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="not_started")
    is_invalid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    anomaly_reason: Mapped[str | None] = mapped_column(String, nullable=True)
    needs_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    auto_close_reason: Mapped[str | None] = mapped_column(String, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    media_retention_eligible_at: Mapped[date | None] = mapped_column(Date, nullable=True)
    media_deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        UniqueConstraint("employee_id", "work_date", name="clock_record_employee_date_unique"),
        CheckConstraint(
            "status IN ('not_started', 'working', 'on_break', 'completed', 'auto_closed')",
            name="clock_record_status_check",
        ),
    )

    def media_present(self) -> list[str]:
        """Names of photo/address fields that still hold data."""
        return [name for name in MEDIA_FIELDS if getattr(self, name) is not None]


class RetentionLog(Base):
    """Append-only audit of media-clearing operations."""

    __tablename__ = "retention_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    table_name: Mapped[str] = mapped_column(String, nullable=False, default="clock_record")
    record_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    data_type: Mapped[str] = mapped_column(String, nullable=False, default="media")
    retention_policy: Mapped[str] = mapped_column(String, nullable=False)
    record_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    employee_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    company_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    fields_cleared: Mapped[list[str]] = mapped_column(PortableJSON, nullable=False)
    deleted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    deletion_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    details: Mapped[dict[str, Any] | None] = mapped_column(PortableJSON, nullable=True)
