from typing import List, Optional
from datetime import datetime
import uuid
from sqlalchemy import (
    String,
    Integer,
    Text,
    ForeignKey,
    Enum,
    Index,
    UniqueConstraint,
    CheckConstraint,
    DateTime,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
import enum

from app.db.custom_types import StringUUID
from app.utils.datetime_utils import naive_utc_now


class Base(DeclarativeBase):
    pass


# Enums
class UserRole(enum.Enum):
    USER = "user"
    ADMIN = "admin"


class RequestType(enum.Enum):
    DEGREE_CERTIFICATE = "degree_certificate"
    PROVISIONAL_CERTIFICATE = "provisional_certificate"
    MIGRATION_CERTIFICATE = "migration_certificate"
    TRANSCRIPT = "transcript"
    MARKSHEET = "marksheet"
    NAME_CORRECTION = "name_correction"
    DOB_CORRECTION = "dob_correction"
    RETOTALING = "retotaling"
    RECHECKING = "rechecking"
    OTHER = "other"


class RequestStatus(enum.Enum):
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    CORRECTION_REQUIRED = "correction_required"
    APPROVED = "approved"
    REJECTED = "rejected"
    IN_PROCESSING = "in_processing"
    READY = "ready"
    COMPLETED = "completed"


class Priority(enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


def _new_id() -> str:
    return str(uuid.uuid4())


# Base model with common audit fields
class AuditMixin:
    """Mixin for common audit fields"""

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=naive_utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=naive_utc_now, nullable=False
    )


# Models
class DocumentRequest(Base, AuditMixin):
    __tablename__ = "document_requests"

    id: Mapped[str] = mapped_column(StringUUID, primary_key=True, default=_new_id)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    request_type: Mapped[RequestType] = mapped_column(
        Enum(RequestType), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    # Correction details, only meaningful for *_correction request types
    correction_current_value: Mapped[Optional[str]] = mapped_column(String(500))
    correction_requested_value: Mapped[Optional[str]] = mapped_column(String(500))
    correction_reason: Mapped[Optional[str]] = mapped_column(Text)

    status: Mapped[RequestStatus] = mapped_column(
        Enum(RequestStatus), default=RequestStatus.SUBMITTED, nullable=False
    )
    priority: Mapped[Priority] = mapped_column(
        Enum(Priority), default=Priority.MEDIUM, nullable=False
    )
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    expected_completion_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Relationships
    uploaded_documents: Mapped[List["RequestDocument"]] = relationship(
        back_populates="request",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="RequestDocument.position",
    )
    admin_remarks: Mapped[List["AdminRemark"]] = relationship(
        back_populates="request",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="AdminRemark.sequence_no",
    )
    timeline: Mapped[List["TimelineEvent"]] = relationship(
        back_populates="request",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="TimelineEvent.sequence_no",
    )

    # Constraints
    __table_args__ = (
        Index("idx_doc_req_owner_status", "owner_id", "status"),
        Index("idx_doc_req_created_at", "created_at"),
        Index("idx_doc_req_status", "status"),
        Index("idx_doc_req_request_type", "request_type"),
        Index("idx_doc_req_priority", "priority"),
    )


class RequestDocument(Base):
    __tablename__ = "request_documents"

    id: Mapped[str] = mapped_column(StringUUID, primary_key=True, default=_new_id)
    request_id: Mapped[str] = mapped_column(
        StringUUID,
        ForeignKey("document_requests.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_url: Mapped[str] = mapped_column(String(1000), nullable=False)
    file_type: Mapped[Optional[str]] = mapped_column(String(100))
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime, default=naive_utc_now, nullable=False
    )

    # Relationships
    request: Mapped["DocumentRequest"] = relationship(
        back_populates="uploaded_documents"
    )

    # Constraints
    __table_args__ = (
        UniqueConstraint("request_id", "position", name="uq_req_doc_position"),
        CheckConstraint("position >= 0", name="ck_req_doc_position_non_negative"),
        Index("idx_req_doc_request_id", "request_id"),
    )


class AdminRemark(Base):
    __tablename__ = "request_admin_remarks"

    id: Mapped[str] = mapped_column(StringUUID, primary_key=True, default=_new_id)
    request_id: Mapped[str] = mapped_column(
        StringUUID,
        ForeignKey("document_requests.id", ondelete="CASCADE"),
        nullable=False,
    )
    sequence_no: Mapped[int] = mapped_column(Integer, nullable=False)
    admin_id: Mapped[str] = mapped_column(String(64), nullable=False)
    admin_name: Mapped[str] = mapped_column(String(201), nullable=False)
    remark: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime, default=naive_utc_now, nullable=False
    )

    # Relationships
    request: Mapped["DocumentRequest"] = relationship(back_populates="admin_remarks")

    # Constraints
    __table_args__ = (
        UniqueConstraint("request_id", "sequence_no", name="uq_admin_remark_seq"),
        Index("idx_admin_remark_request_id", "request_id"),
    )


class TimelineEvent(Base):
    __tablename__ = "request_timeline_events"

    id: Mapped[str] = mapped_column(StringUUID, primary_key=True, default=_new_id)
    request_id: Mapped[str] = mapped_column(
        StringUUID,
        ForeignKey("document_requests.id", ondelete="CASCADE"),
        nullable=False,
    )
    sequence_no: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[RequestStatus] = mapped_column(Enum(RequestStatus), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    # NULL for system-generated entries
    performed_by: Mapped[Optional[str]] = mapped_column(String(64))
    performed_by_name: Mapped[Optional[str]] = mapped_column(String(201))
    timestamp: Mapped[datetime] = mapped_column(
        DateTime, default=naive_utc_now, nullable=False
    )

    # Relationships
    request: Mapped["DocumentRequest"] = relationship(back_populates="timeline")

    # Constraints
    __table_args__ = (
        UniqueConstraint("request_id", "sequence_no", name="uq_timeline_event_seq"),
        Index("idx_timeline_event_request_id", "request_id"),
        Index("idx_timeline_event_timestamp", "timestamp"),
    )
