import pytest
from datetime import datetime, timezone
from unittest.mock import patch

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import (
    DocumentRequest,
    Priority,
    RequestStatus,
    RequestType,
    TimelineEvent,
)
from app.schemas.request_schemas import CorrectionDetailsInput, UploadedDocumentInput
from app.services.request_lifecycle_service import RequestLifecycleService
from app.utils.errors import ValidationError


class TestCreateRequest:
    """Test request submission."""

    @pytest.mark.asyncio
    async def test_new_request_starts_submitted_with_seeded_timeline(
        self, service: RequestLifecycleService, owner
    ):
        """A new request has exactly one system-generated submitted entry."""
        created = await service.create_request(
            owner_id=owner.id,
            request_type="transcript",
            title="Transcript for visa",
            description="Two copies please",
        )

        assert created.status == RequestStatus.SUBMITTED
        assert created.owner_id == owner.id
        assert created.request_type == RequestType.TRANSCRIPT
        assert len(created.timeline) == 1

        entry = created.timeline[0]
        assert entry.status == RequestStatus.SUBMITTED
        assert entry.message == "Request submitted successfully"
        assert entry.performed_by is None
        assert entry.performed_by_name is None

        assert created.admin_remarks == []
        assert created.rejection_reason is None
        assert created.completed_at is None

    @pytest.mark.asyncio
    async def test_priority_defaults_to_medium(self, service, owner):
        """Unset or blank priority falls back to medium."""
        unset = await service.create_request(
            owner_id=owner.id,
            request_type=RequestType.MARKSHEET,
            title="Marksheet",
            description="Semester 3 marksheet",
        )
        blank = await service.create_request(
            owner_id=owner.id,
            request_type=RequestType.MARKSHEET,
            title="Marksheet",
            description="Semester 4 marksheet",
            priority="",
        )
        urgent = await service.create_request(
            owner_id=owner.id,
            request_type=RequestType.MARKSHEET,
            title="Marksheet",
            description="Semester 5 marksheet",
            priority="urgent",
        )

        assert unset.priority == Priority.MEDIUM
        assert blank.priority == Priority.MEDIUM
        assert urgent.priority == Priority.URGENT

    @pytest.mark.asyncio
    async def test_timestamps_are_set_from_a_single_clock_reading(self, service, owner):
        """createdAt, updatedAt and the seeded timeline entry share one timestamp."""
        pinned = datetime(2026, 3, 1, 9, 30, 0)
        with patch(
            "app.services.request_lifecycle_service.naive_utc_now", return_value=pinned
        ):
            created = await service.create_request(
                owner_id=owner.id,
                request_type=RequestType.OTHER,
                title="Bonafide letter",
                description="For a bank account",
            )

        assert created.created_at == pinned
        assert created.updated_at == pinned
        assert created.timeline[0].timestamp == pinned

    @pytest.mark.asyncio
    async def test_uploaded_documents_keep_their_order(self, service, owner):
        """Documents are stored in the order they were handed over."""
        pinned = datetime(2026, 3, 1, 9, 30, 0)
        with patch(
            "app.services.request_lifecycle_service.naive_utc_now", return_value=pinned
        ):
            created = await service.create_request(
                owner_id=owner.id,
                request_type=RequestType.DEGREE_CERTIFICATE,
                title="Degree certificate",
                description="Original certificate",
                uploaded_documents=[
                    {"fileName": "fee-receipt.pdf", "fileUrl": "/uploads/a.pdf", "fileType": "application/pdf"},
                    UploadedDocumentInput(
                        file_name="photo.jpg",
                        file_url="/uploads/b.jpg",
                        file_type="image/jpeg",
                        uploaded_at=datetime(2026, 2, 28, 12, 0, tzinfo=timezone.utc),
                    ),
                    {"file_name": "id.png", "file_url": "/uploads/c.png"},
                ],
            )

        assert [d.file_name for d in created.uploaded_documents] == [
            "fee-receipt.pdf",
            "photo.jpg",
            "id.png",
        ]
        assert created.uploaded_documents[0].uploaded_at == pinned
        assert created.uploaded_documents[1].uploaded_at == datetime(2026, 2, 28, 12, 0)
        assert created.uploaded_documents[2].file_type is None

    @pytest.mark.asyncio
    async def test_correction_details_are_optional_and_not_cross_checked(
        self, service, owner
    ):
        """Correction details are kept even on non-correction request types."""
        with_details = await service.create_request(
            owner_id=owner.id,
            request_type=RequestType.TRANSCRIPT,
            title="Transcript",
            description="With a note",
            correction_details=CorrectionDetailsInput(
                current_value="Jon", requested_value="John", reason="Typo"
            ),
        )
        without_details = await service.create_request(
            owner_id=owner.id,
            request_type=RequestType.NAME_CORRECTION,
            title="Name correction",
            description="No details yet",
        )

        assert with_details.correction_details is not None
        assert with_details.correction_details.requested_value == "John"
        assert without_details.correction_details is None

    @pytest.mark.asyncio
    async def test_expected_completion_date_accepts_iso_strings(self, service, owner):
        created = await service.create_request(
            owner_id=owner.id,
            request_type=RequestType.PROVISIONAL_CERTIFICATE,
            title="Provisional certificate",
            description="Needed for joining",
            expected_completion_date="2026-04-15T10:00:00+05:30",
        )

        assert created.expected_completion_date == datetime(2026, 4, 15, 4, 30)

    @pytest.mark.asyncio
    async def test_request_is_persisted_with_its_timeline(
        self, service, owner, db_session: AsyncSession
    ):
        created = await service.create_request(
            owner_id=owner.id,
            request_type=RequestType.RECHECKING,
            title="Rechecking",
            description="Physics paper",
        )

        stored = (
            await db_session.execute(
                select(DocumentRequest).where(DocumentRequest.id == created.id)
            )
        ).scalar_one()
        events = (
            await db_session.execute(
                select(TimelineEvent).where(TimelineEvent.request_id == created.id)
            )
        ).scalars().all()

        assert stored.status == RequestStatus.SUBMITTED
        assert len(events) == 1
        assert events[0].sequence_no == 0


class TestCreateRequestValidation:
    """Test that malformed submissions are refused without persisting anything."""

    @pytest.mark.asyncio
    async def test_unknown_request_type_is_rejected(self, service, owner):
        with pytest.raises(ValidationError) as exc_info:
            await service.create_request(
                owner_id=owner.id,
                request_type="library_card",
                title="Library card",
                description="Lost it",
            )

        assert exc_info.value.error_code == "INVALID_REQUEST_TYPE"
        assert "library_card" in exc_info.value.message

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "title, description, error_code",
        [
            ("", "Some description", "TITLE_REQUIRED"),
            ("   ", "Some description", "TITLE_REQUIRED"),
            ("Some title", "", "DESCRIPTION_REQUIRED"),
            ("Some title", None, "DESCRIPTION_REQUIRED"),
        ],
    )
    async def test_title_and_description_are_required(
        self, service, owner, title, description, error_code
    ):
        with pytest.raises(ValidationError) as exc_info:
            await service.create_request(
                owner_id=owner.id,
                request_type=RequestType.TRANSCRIPT,
                title=title,
                description=description,
            )

        assert exc_info.value.error_code == error_code

    @pytest.mark.asyncio
    async def test_unknown_priority_is_rejected(self, service, owner):
        with pytest.raises(ValidationError) as exc_info:
            await service.create_request(
                owner_id=owner.id,
                request_type=RequestType.TRANSCRIPT,
                title="Transcript",
                description="Copies",
                priority="critical",
            )

        assert exc_info.value.error_code == "INVALID_PRIORITY"

    @pytest.mark.asyncio
    async def test_malformed_document_reference_reports_its_position(
        self, service, owner
    ):
        with pytest.raises(ValidationError) as exc_info:
            await service.create_request(
                owner_id=owner.id,
                request_type=RequestType.TRANSCRIPT,
                title="Transcript",
                description="Copies",
                uploaded_documents=[
                    {"fileName": "ok.pdf", "fileUrl": "/uploads/ok.pdf"},
                    {"fileName": "missing-url.pdf"},
                ],
            )

        assert exc_info.value.error_code == "INVALID_UPLOADED_DOCUMENTS"
        assert exc_info.value.errors
        assert exc_info.value.errors[0]["field"].startswith("uploadedDocuments -> 1")

    @pytest.mark.asyncio
    async def test_failed_validation_persists_nothing(
        self, service, owner, db_session: AsyncSession
    ):
        with pytest.raises(ValidationError):
            await service.create_request(
                owner_id=owner.id,
                request_type="unknown",
                title="Transcript",
                description="Copies",
            )

        stored = (await db_session.execute(select(DocumentRequest))).scalars().all()
        assert stored == []
