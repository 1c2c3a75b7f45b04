from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field, field_validator

from app.db.models import Priority, RequestStatus, RequestType
from app.schemas.camel_base_model import CamelCaseBaseModel as BaseModel


# ========== INPUT SCHEMAS ==========


class UploadedDocumentInput(BaseModel):
    """File reference handed over by the upload provider"""

    file_name: str = Field(..., min_length=1, max_length=255, description="Original file name")
    file_url: str = Field(..., min_length=1, max_length=1000, description="URL of the stored file")
    file_type: Optional[str] = Field(None, max_length=100, description="File MIME type")
    uploaded_at: Optional[datetime] = Field(
        None, description="Upload timestamp, defaults to the request creation time"
    )


class CorrectionDetailsInput(BaseModel):
    """Correction payload for name/DOB correction requests"""

    current_value: Optional[str] = Field(None, max_length=500, description="Value currently on record")
    requested_value: Optional[str] = Field(None, max_length=500, description="Value the user asks for")
    reason: Optional[str] = Field(None, description="Why the correction is needed")


class RequestFilter(BaseModel):
    """Filter options for the admin request listing; unset options impose no constraint"""

    status: Optional[RequestStatus] = Field(None, description="Exact status match")
    request_type: Optional[RequestType] = Field(None, description="Exact request type match")
    priority: Optional[Priority] = Field(None, description="Exact priority match")
    search: Optional[str] = Field(
        None, description="Case-insensitive substring of title or description"
    )

    @field_validator("status", "request_type", "priority", "search", mode="before")
    def blank_as_unset(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


# ========== RESPONSE SCHEMAS ==========


class UploadedDocumentResponse(BaseModel):
    file_name: str = Field(..., description="Original file name")
    file_url: str = Field(..., description="URL of the stored file")
    file_type: Optional[str] = Field(None, description="File MIME type")
    uploaded_at: datetime = Field(..., description="Upload timestamp")


class CorrectionDetailsResponse(BaseModel):
    current_value: Optional[str] = Field(None, description="Value currently on record")
    requested_value: Optional[str] = Field(None, description="Value the user asks for")
    reason: Optional[str] = Field(None, description="Why the correction is needed")


class AdminRemarkResponse(BaseModel):
    admin_id: str = Field(..., description="ID of the admin who wrote the remark")
    admin_name: str = Field(..., description="Full name of the admin")
    remark: str = Field(..., description="Remark text")
    timestamp: datetime = Field(..., description="When the remark was added")


class TimelineEventResponse(BaseModel):
    status: RequestStatus = Field(..., description="Status at the time of the event")
    message: str = Field(..., description="Event message")
    performed_by: Optional[str] = Field(
        None, description="Actor ID, null for system-generated events"
    )
    performed_by_name: Optional[str] = Field(None, description="Actor full name")
    timestamp: datetime = Field(..., description="When the event happened")


class DocumentRequestResponse(BaseModel):
    """Full snapshot of a document request"""

    id: str = Field(..., description="Request ID")
    owner_id: str = Field(..., description="ID of the submitting user")
    request_type: RequestType = Field(..., description="Requested document type")
    title: str = Field(..., description="Request title")
    description: str = Field(..., description="Request description")
    correction_details: Optional[CorrectionDetailsResponse] = Field(
        None, description="Correction details, if any"
    )
    uploaded_documents: List[UploadedDocumentResponse] = Field(
        default_factory=list, description="Attached files in upload order"
    )
    status: RequestStatus = Field(..., description="Current status")
    priority: Priority = Field(..., description="Priority")
    admin_remarks: List[AdminRemarkResponse] = Field(
        default_factory=list, description="Admin remarks, oldest first"
    )
    timeline: List[TimelineEventResponse] = Field(
        default_factory=list, description="Audit trail, oldest first"
    )
    rejection_reason: Optional[str] = Field(None, description="Reason given on rejection")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")
    expected_completion_date: Optional[datetime] = Field(
        None, description="Expected completion date"
    )
    completed_at: Optional[datetime] = Field(
        None, description="When the request was last moved to completed"
    )


class DocumentRequestListResponse(BaseModel):
    requests: List[DocumentRequestResponse] = Field(
        ..., description="Requests ordered by creation date, newest first"
    )
    total_count: int = Field(..., description="Number of requests returned")


class RequestStatsResponse(BaseModel):
    total: int = Field(..., description="Total number of requests")
    by_status: Dict[str, int] = Field(
        ..., description="Request counts per observed status"
    )
