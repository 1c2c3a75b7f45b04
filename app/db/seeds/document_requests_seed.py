from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import (
    AdminRemark,
    DocumentRequest,
    RequestDocument,
    RequestStatus,
    RequestType,
    TimelineEvent,
    UserRole,
)
from app.schemas.auth_schemas import Principal
from app.services.request_lifecycle_service import RequestLifecycleService
from app.utils.logging import get_logger

logger = get_logger()

SEED_ADMIN = Principal(id="admin-001", role=UserRole.ADMIN, first_name="Registrar", last_name="Office")


async def seed_document_requests(db_session: AsyncSession) -> int:
    """Seed sample document requests - clear existing and add new"""

    # Clear existing requests; child rows first
    await db_session.execute(delete(TimelineEvent))
    await db_session.execute(delete(AdminRemark))
    await db_session.execute(delete(RequestDocument))
    await db_session.execute(delete(DocumentRequest))
    await db_session.commit()

    service = RequestLifecycleService(db_session)

    # (owner, type, title, description, priority, transitions)
    requests_data = [
        (
            "student-1001",
            RequestType.TRANSCRIPT,
            "Official transcript for graduate admission",
            "Two sealed copies of the official transcript are required.",
            "high",
            [RequestStatus.UNDER_REVIEW, RequestStatus.APPROVED],
        ),
        (
            "student-1002",
            RequestType.DEGREE_CERTIFICATE,
            "Degree certificate collection",
            "Requesting the original degree certificate after convocation.",
            "medium",
            [RequestStatus.UNDER_REVIEW, RequestStatus.IN_PROCESSING, RequestStatus.READY, RequestStatus.COMPLETED],
        ),
        (
            "student-1003",
            RequestType.NAME_CORRECTION,
            "Correct spelling of surname",
            "The surname on the marksheet does not match the passport.",
            "urgent",
            [RequestStatus.CORRECTION_REQUIRED],
        ),
        (
            "student-1001",
            RequestType.RETOTALING,
            "Retotaling of semester 5 mathematics paper",
            "The total marks on the answer script appear to be miscounted.",
            "low",
            [],
        ),
    ]

    for owner_id, request_type, title, description, priority, transitions in requests_data:
        correction_details = (
            {"currentValue": "Smyth", "requestedValue": "Smith", "reason": "Typographical error"}
            if request_type == RequestType.NAME_CORRECTION
            else None
        )
        created = await service.create_request(
            owner_id=owner_id,
            request_type=request_type,
            title=title,
            description=description,
            correction_details=correction_details,
            uploaded_documents=[
                {
                    "fileName": "id-proof.pdf",
                    "fileUrl": f"/uploads/{owner_id}/id-proof.pdf",
                    "fileType": "application/pdf",
                }
            ],
            priority=priority,
        )
        for new_status in transitions:
            await service.update_status(created.id, new_status, SEED_ADMIN)

    rejected = await service.create_request(
        owner_id="student-1004",
        request_type=RequestType.MIGRATION_CERTIFICATE,
        title="Migration certificate",
        description="Needed for transfer to another university.",
    )
    await service.add_remark(rejected.id, "No-dues clearance is missing.", SEED_ADMIN)
    await service.reject_request(rejected.id, "No-dues clearance not submitted", SEED_ADMIN)

    seeded_count = len(requests_data) + 1
    logger.info(f"Seeded {seeded_count} document requests")
    return seeded_count
