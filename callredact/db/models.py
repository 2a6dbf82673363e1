"""SQLAlchemy ORM models."""

from datetime import datetime

from sqlalchemy import JSON, TIMESTAMP, Boolean, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class RedactionRecordModel(Base):
    """Redaction outcome for one call recording."""

    __tablename__ = "redaction_records"

    recording_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, index=True
    )  # not_needed, processing, completed, failed
    redacted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default="false"
    )
    segments: Mapped[list] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        server_default="[]",
    )
    sanitized_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    redacted_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_kind: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    replace_phase: Mapped[str | None] = mapped_column(
        String(20), nullable=True
    )  # pending, uploaded_temp, deleted_original, renamed_temp
    remote_target_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    remote_temp_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
