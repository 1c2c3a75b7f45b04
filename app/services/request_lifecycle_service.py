import contextlib
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Sequence, Type, Union

from pydantic import TypeAdapter, ValidationError as PydanticValidationError
from sqlalchemy import String, select, and_, or_, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.settings import settings
from app.db.models import (
    AdminRemark,
    DocumentRequest,
    Priority,
    RequestDocument,
    RequestStatus,
    RequestType,
    TimelineEvent,
)
from app.schemas.auth_schemas import Principal
from app.schemas.request_schemas import (
    AdminRemarkResponse,
    CorrectionDetailsInput,
    CorrectionDetailsResponse,
    DocumentRequestListResponse,
    DocumentRequestResponse,
    RequestFilter,
    RequestStatsResponse,
    TimelineEventResponse,
    UploadedDocumentInput,
    UploadedDocumentResponse,
)
from app.utils.datetime_utils import naive_utc_now, to_naive_utc
from app.utils.errors import (
    AuthorizationError,
    NotFoundError,
    PersistenceError,
    ValidationError,
    format_pydantic_errors,
    validation_error_from_pydantic,
)
from app.utils.logging import get_logger

logger = get_logger()

SUBMITTED_MESSAGE = "Request submitted successfully"

_optional_datetime = TypeAdapter(Optional[datetime])


class RequestLifecycleService:
    """Owns document requests: creation, status transitions, remarks, rejection and reporting.

    Every mutation is a single read-modify-write transaction on one request row:
    the row is loaded ``FOR UPDATE``, the change and its timeline entry are
    flushed together, and the transaction is committed before the snapshot is
    handed back. Any storage failure rolls the whole transaction back.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    # ========== PUBLIC API METHODS ==========

    async def create_request(
        self,
        owner_id: str,
        request_type: Union[RequestType, str],
        title: str,
        description: str,
        correction_details: Union[CorrectionDetailsInput, Dict[str, Any], None] = None,
        uploaded_documents: Optional[
            Iterable[Union[UploadedDocumentInput, Dict[str, Any]]]
        ] = None,
        priority: Union[Priority, str, None] = None,
        expected_completion_date: Union[datetime, str, None] = None,
    ) -> DocumentRequestResponse:
        """Submit a new request on behalf of ``owner_id``"""
        owner_id = self._require_text(owner_id, "owner_id", "OWNER_ID_REQUIRED")
        parsed_type = self._parse_enum(RequestType, request_type, "request type")
        self._require_text(title, "title", "TITLE_REQUIRED")
        self._require_text(description, "description", "DESCRIPTION_REQUIRED")
        parsed_priority = (
            self._parse_enum(Priority, priority, "priority")
            if not self._is_blank(priority)
            else Priority.MEDIUM
        )
        correction = self._parse_correction_details(correction_details)
        documents = self._parse_uploaded_documents(uploaded_documents)
        expected_completion = self._parse_expected_completion_date(
            expected_completion_date
        )

        now = naive_utc_now()
        document_request = DocumentRequest(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            request_type=parsed_type,
            title=title,
            description=description,
            correction_current_value=correction.current_value if correction else None,
            correction_requested_value=(
                correction.requested_value if correction else None
            ),
            correction_reason=correction.reason if correction else None,
            status=RequestStatus.SUBMITTED,
            priority=parsed_priority,
            expected_completion_date=expected_completion,
            created_at=now,
            updated_at=now,
            uploaded_documents=[
                RequestDocument(
                    position=position,
                    file_name=document.file_name,
                    file_url=document.file_url,
                    file_type=document.file_type,
                    uploaded_at=to_naive_utc(document.uploaded_at) or now,
                )
                for position, document in enumerate(documents)
            ],
            admin_remarks=[],
            timeline=[
                TimelineEvent(
                    sequence_no=0,
                    status=RequestStatus.SUBMITTED,
                    message=SUBMITTED_MESSAGE,
                    performed_by=None,
                    performed_by_name=None,
                    timestamp=now,
                )
            ],
        )

        async with self._transaction("create request"):
            self.db.add(document_request)
            await self.db.flush()
            snapshot = self._transform_request_to_response(document_request)

        logger.info(
            f"Request {snapshot.id} ({parsed_type.value}) submitted by user {owner_id}"
        )
        return snapshot

    async def get_request_by_id(
        self, request_id: str, caller: Principal
    ) -> DocumentRequestResponse:
        """Get a single request; only its owner or an admin may read it"""
        async with self._transaction("retrieve request", commit=False):
            document_request = await self._fetch_request(request_id)
            self._ensure_can_view(document_request, caller)
            return self._transform_request_to_response(document_request)

    async def list_my_requests(self, owner_id: str) -> DocumentRequestListResponse:
        """List every request owned by ``owner_id``, newest first"""
        query = (
            select(DocumentRequest)
            .where(DocumentRequest.owner_id == str(owner_id))
            .order_by(DocumentRequest.created_at.desc(), DocumentRequest.id.desc())
        )

        async with self._transaction("list requests", commit=False):
            result = await self.db.execute(query)
            return self._transform_requests_to_list(result.scalars().all())

    async def list_all_requests(
        self,
        caller: Principal,
        request_filter: Union[RequestFilter, Dict[str, Any], None] = None,
    ) -> DocumentRequestListResponse:
        """List all requests matching ``request_filter``, newest first (admin only)"""
        self._require_admin(caller, "list all requests")
        parsed_filter = self._parse_filter(request_filter)

        query = select(DocumentRequest).order_by(
            DocumentRequest.created_at.desc(), DocumentRequest.id.desc()
        )
        conditions = self._build_filter_conditions(parsed_filter)
        if conditions:
            query = query.where(and_(*conditions))

        async with self._transaction("list requests", commit=False):
            result = await self.db.execute(query)
            return self._transform_requests_to_list(result.scalars().all())

    async def update_status(
        self,
        request_id: str,
        new_status: Union[RequestStatus, str],
        caller: Principal,
        message: Optional[str] = None,
    ) -> DocumentRequestResponse:
        """Move a request to any status and record the transition (admin only)"""
        self._require_admin(caller, "update request status")
        parsed_status = self._parse_enum(RequestStatus, new_status, "status")
        event_message = (
            message
            if not self._is_blank(message)
            else f"Status updated to {parsed_status.value}"
        )

        async with self._transaction("update request status"):
            document_request = await self._fetch_request(request_id, for_update=True)
            old_status = document_request.status
            now = naive_utc_now()

            document_request.status = parsed_status
            if parsed_status == RequestStatus.COMPLETED:
                document_request.completed_at = now
            document_request.updated_at = now
            self._append_timeline_event(
                document_request, parsed_status, event_message, caller, now
            )

            await self.db.flush()
            snapshot = self._transform_request_to_response(document_request)

        logger.info(
            f"Request {snapshot.id} moved from {old_status.value} to "
            f"{parsed_status.value} by admin {caller.id}"
        )
        return snapshot

    async def add_remark(
        self, request_id: str, remark: str, caller: Principal
    ) -> DocumentRequestResponse:
        """Attach an admin remark and mirror it into the timeline (admin only)"""
        self._require_admin(caller, "add remarks")
        self._require_text(remark, "remark", "REMARK_REQUIRED")

        async with self._transaction("add remark"):
            document_request = await self._fetch_request(request_id, for_update=True)
            now = naive_utc_now()

            document_request.admin_remarks.append(
                AdminRemark(
                    sequence_no=len(document_request.admin_remarks),
                    admin_id=caller.id,
                    admin_name=caller.full_name,
                    remark=remark,
                    timestamp=now,
                )
            )
            document_request.updated_at = now
            self._append_timeline_event(
                document_request,
                document_request.status,
                f"Admin added a remark: {remark}",
                caller,
                now,
            )

            await self.db.flush()
            snapshot = self._transform_request_to_response(document_request)

        logger.info(f"Remark added to request {snapshot.id} by admin {caller.id}")
        return snapshot

    async def reject_request(
        self, request_id: str, reason: str, caller: Principal
    ) -> DocumentRequestResponse:
        """Reject a request with a reason (admin only)"""
        self._require_admin(caller, "reject requests")
        self._require_text(reason, "reason", "REJECTION_REASON_REQUIRED")

        async with self._transaction("reject request"):
            document_request = await self._fetch_request(request_id, for_update=True)
            now = naive_utc_now()

            document_request.status = RequestStatus.REJECTED
            document_request.rejection_reason = reason
            document_request.updated_at = now
            self._append_timeline_event(
                document_request,
                RequestStatus.REJECTED,
                f"Request rejected: {reason}",
                caller,
                now,
            )

            await self.db.flush()
            snapshot = self._transform_request_to_response(document_request)

        logger.info(f"Request {snapshot.id} rejected by admin {caller.id}")
        return snapshot

    async def get_request_stats(self, caller: Principal) -> RequestStatsResponse:
        """Count requests per current status; statuses with no requests are omitted (admin only)"""
        self._require_admin(caller, "view request statistics")

        query = select(DocumentRequest.status, func.count(DocumentRequest.id)).group_by(
            DocumentRequest.status
        )

        async with self._transaction("compute request statistics", commit=False):
            result = await self.db.execute(query)
            counts = {row[0]: row[1] for row in result.all()}

        by_status = {
            status.value: counts[status] for status in RequestStatus if counts.get(status)
        }
        return RequestStatsResponse(total=sum(by_status.values()), by_status=by_status)

    # ========== PRIVATE HELPER METHODS ==========

    @contextlib.asynccontextmanager
    async def _transaction(self, action: str, commit: bool = True) -> AsyncIterator[None]:
        """Run a unit of work; roll back on any failure and surface storage errors as PersistenceError"""
        try:
            yield
            if commit:
                await self.db.commit()
            else:
                await self.db.rollback()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to {action}: {str(e)}")
            raise PersistenceError(f"Failed to {action}", "DB_ERROR") from e
        except Exception:
            await self.db.rollback()
            raise

    async def _fetch_request(
        self, request_id: str, for_update: bool = False
    ) -> DocumentRequest:
        """Load a request or raise NotFoundError"""
        request_uuid = self._parse_request_id(request_id)

        query = select(DocumentRequest).where(DocumentRequest.id == request_uuid)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)

        result = await self.db.execute(query)
        document_request = result.scalar_one_or_none()

        if not document_request:
            raise NotFoundError("Request not found", "REQUEST_NOT_FOUND")

        return document_request

    def _parse_request_id(self, request_id: str) -> uuid.UUID:
        try:
            return uuid.UUID(str(request_id))
        except (ValueError, TypeError):
            raise NotFoundError("Request not found", "REQUEST_NOT_FOUND")

    def _append_timeline_event(
        self,
        document_request: DocumentRequest,
        status: RequestStatus,
        message: str,
        caller: Principal,
        timestamp: datetime,
    ) -> None:
        document_request.timeline.append(
            TimelineEvent(
                sequence_no=len(document_request.timeline),
                status=status,
                message=message,
                performed_by=caller.id,
                performed_by_name=caller.full_name,
                timestamp=timestamp,
            )
        )

    def _require_admin(self, caller: Principal, action: str) -> None:
        if not caller.is_admin:
            logger.warning(f"User {caller.id} denied: only administrators can {action}")
            raise AuthorizationError(
                f"Only administrators can {action}", "ADMIN_ONLY"
            )

    def _ensure_can_view(self, document_request: DocumentRequest, caller: Principal) -> None:
        if caller.is_admin or caller.id == document_request.owner_id:
            return
        logger.warning(
            f"User {caller.id} denied access to request {document_request.id}"
        )
        raise AuthorizationError(
            "Not authorized to view this request", "NOT_REQUEST_OWNER"
        )

    @staticmethod
    def _is_blank(value: Any) -> bool:
        return value is None or (isinstance(value, str) and not value.strip())

    def _require_text(self, value: Any, field: str, error_code: str) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(
                f"{field.replace('_', ' ').capitalize()} is required",
                error_code,
                errors=[{"field": field, "message": "Field required", "type": "missing"}],
            )
        return value

    def _parse_enum(self, enum_cls: Type[Enum], value: Any, field: str) -> Enum:
        if isinstance(value, enum_cls):
            return value
        try:
            return enum_cls(value)
        except ValueError:
            allowed = [member.value for member in enum_cls]
            raise ValidationError(
                f"Invalid {field} '{value}'. Must be one of {allowed}.",
                f"INVALID_{field.replace(' ', '_').upper()}",
            )

    def _parse_correction_details(
        self, correction_details: Union[CorrectionDetailsInput, Dict[str, Any], None]
    ) -> Optional[CorrectionDetailsInput]:
        if correction_details is None:
            return None
        if isinstance(correction_details, CorrectionDetailsInput):
            return correction_details
        try:
            return CorrectionDetailsInput.model_validate(correction_details)
        except PydanticValidationError as e:
            raise validation_error_from_pydantic(
                e, "Invalid correction details", "INVALID_CORRECTION_DETAILS"
            )

    def _parse_uploaded_documents(
        self,
        uploaded_documents: Optional[
            Iterable[Union[UploadedDocumentInput, Dict[str, Any]]]
        ],
    ) -> List[UploadedDocumentInput]:
        if uploaded_documents is None:
            return []

        documents: List[UploadedDocumentInput] = []
        errors: List[Dict[str, Any]] = []
        for index, document in enumerate(uploaded_documents):
            if isinstance(document, UploadedDocumentInput):
                documents.append(document)
                continue
            try:
                documents.append(UploadedDocumentInput.model_validate(document))
            except PydanticValidationError as e:
                for error in format_pydantic_errors(e):
                    error["field"] = f"uploadedDocuments -> {index} -> {error['field']}"
                    errors.append(error)

        if errors:
            raise ValidationError(
                "Invalid uploaded documents", "INVALID_UPLOADED_DOCUMENTS", errors=errors
            )
        return documents

    def _parse_expected_completion_date(
        self, value: Union[datetime, str, None]
    ) -> Optional[datetime]:
        try:
            return to_naive_utc(_optional_datetime.validate_python(value))
        except PydanticValidationError as e:
            raise validation_error_from_pydantic(
                e, "Invalid expected completion date", "INVALID_EXPECTED_COMPLETION_DATE"
            )

    def _parse_filter(
        self, request_filter: Union[RequestFilter, Dict[str, Any], None]
    ) -> RequestFilter:
        if request_filter is None:
            return RequestFilter()
        if isinstance(request_filter, RequestFilter):
            parsed_filter = request_filter
        else:
            try:
                parsed_filter = RequestFilter.model_validate(request_filter)
            except PydanticValidationError as e:
                raise validation_error_from_pydantic(
                    e, "Invalid request filter", "INVALID_REQUEST_FILTER"
                )

        if parsed_filter.search and len(parsed_filter.search) > settings.SEARCH_MAX_LENGTH:
            raise ValidationError(
                f"Search term must be at most {settings.SEARCH_MAX_LENGTH} characters",
                "SEARCH_TERM_TOO_LONG",
            )
        return parsed_filter

    def _build_filter_conditions(self, request_filter: RequestFilter) -> list:
        conditions = []
        if request_filter.status is not None:
            conditions.append(DocumentRequest.status == request_filter.status)
        if request_filter.request_type is not None:
            conditions.append(DocumentRequest.request_type == request_filter.request_type)
        if request_filter.priority is not None:
            conditions.append(DocumentRequest.priority == request_filter.priority)
        if request_filter.search:
            conditions.append(
                or_(
                    self._search_condition(DocumentRequest.title, request_filter.search),
                    self._search_condition(
                        DocumentRequest.description, request_filter.search
                    ),
                )
            )
        return conditions

    def _search_condition(self, column, term: str):
        """Case-insensitive literal substring match that folds non-ASCII letters too"""
        if self.db.get_bind().dialect.name == "sqlite":
            # casefold() is registered on every connection by register_sqlite_functions
            return func.casefold(column, type_=String).contains(
                term.casefold(), autoescape=True
            )
        return column.icontains(term, autoescape=True)

    def _transform_requests_to_list(
        self, document_requests: Sequence[DocumentRequest]
    ) -> DocumentRequestListResponse:
        requests = [
            self._transform_request_to_response(document_request)
            for document_request in document_requests
        ]
        return DocumentRequestListResponse(requests=requests, total_count=len(requests))

    def _transform_request_to_response(
        self, document_request: DocumentRequest
    ) -> DocumentRequestResponse:
        """Transform a request ORM object and its child rows into a snapshot"""
        has_correction = any(
            value is not None
            for value in (
                document_request.correction_current_value,
                document_request.correction_requested_value,
                document_request.correction_reason,
            )
        )

        return DocumentRequestResponse(
            id=str(document_request.id),
            owner_id=document_request.owner_id,
            request_type=document_request.request_type,
            title=document_request.title,
            description=document_request.description,
            correction_details=(
                CorrectionDetailsResponse(
                    current_value=document_request.correction_current_value,
                    requested_value=document_request.correction_requested_value,
                    reason=document_request.correction_reason,
                )
                if has_correction
                else None
            ),
            uploaded_documents=[
                UploadedDocumentResponse(
                    file_name=document.file_name,
                    file_url=document.file_url,
                    file_type=document.file_type,
                    uploaded_at=document.uploaded_at,
                )
                for document in document_request.uploaded_documents
            ],
            status=document_request.status,
            priority=document_request.priority,
            admin_remarks=[
                AdminRemarkResponse(
                    admin_id=remark.admin_id,
                    admin_name=remark.admin_name,
                    remark=remark.remark,
                    timestamp=remark.timestamp,
                )
                for remark in document_request.admin_remarks
            ],
            timeline=[
                TimelineEventResponse(
                    status=event.status,
                    message=event.message,
                    performed_by=event.performed_by,
                    performed_by_name=event.performed_by_name,
                    timestamp=event.timestamp,
                )
                for event in document_request.timeline
            ],
            rejection_reason=document_request.rejection_reason,
            created_at=document_request.created_at,
            updated_at=document_request.updated_at,
            expected_completion_date=document_request.expected_completion_date,
            completed_at=document_request.completed_at,
        )


def get_request_lifecycle_service(db_session: AsyncSession) -> RequestLifecycleService:
    """Factory function to get RequestLifecycleService instance"""
    return RequestLifecycleService(db_session)
