# app/models/claim.py
from pydantic import AliasChoices, BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime, date

from app.core.constants import ClaimStatus, Severity, AnalysisStatus
from app.models.base import StatusChange, utc_now

# ===================
# Supporting Models
# ===================

class VehicleInfo(BaseModel):
    """Descriptive vehicle data supplied with the claim."""
    make: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    year: int = Field(..., ge=1886, le=2100)
    license_plate: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("license_plate", "licensePlate")
    )
    vin: Optional[str] = None
    color: Optional[str] = None

    @field_validator("make", "model")
    @classmethod
    def _strip_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class ImageRef(BaseModel):
    """Opaque reference to a stored damage photograph."""
    reference: str
    url: str
    original_name: str
    content_type: str
    size: int = 0


class DamageAnalysis(BaseModel):
    """
    Per-image assessment, index-aligned with Claim.image_refs.

    A failed analysis is kept as a placeholder with status=failed so that
    image_refs[i] and damage_analyses[i] always describe the same photo.
    """
    status: AnalysisStatus = AnalysisStatus.OK
    severity: Optional[Severity] = None
    confidence: float = Field(default=0.0, ge=0, le=1)
    damage_types: List[str] = Field(default_factory=list)
    description: str = ""
    error: Optional[str] = None
    is_mock: bool = False
    analyzed_at: datetime = Field(default_factory=utc_now)

    @field_validator("damage_types")
    @classmethod
    def _dedupe_types(cls, value: List[str]) -> List[str]:
        seen = []
        for item in value:
            if item not in seen:
                seen.append(item)
        return seen

    @property
    def succeeded(self) -> bool:
        return self.status == AnalysisStatus.OK and self.severity is not None

    @classmethod
    def failed(cls, error: str) -> "DamageAnalysis":
        return cls(status=AnalysisStatus.FAILED, error=error)


class ImageUpload(BaseModel):
    """Raw photo as received at the boundary, before it is stored."""
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


# ===================
# Main Claim Models
# ===================

class ClaimCreate(BaseModel):
    """Submission payload, validated before it reaches the lifecycle manager."""
    user_id: str = Field(..., min_length=1)
    vehicle_info: VehicleInfo
    incident_description: str = Field(..., min_length=1)
    incident_date: date
    location: Optional[str] = None

    @field_validator("user_id", "incident_description")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class Claim(BaseModel):
    """Complete claim with all details."""
    claim_id: str
    claim_number: str
    user_id: str

    vehicle_info: VehicleInfo
    incident_description: str
    incident_date: date
    location: Optional[str] = None

    # Images and triage
    image_refs: List[ImageRef] = Field(default_factory=list)
    damage_analyses: List[DamageAnalysis] = Field(default_factory=list)
    severity: Severity = Severity.MINOR
    estimated_amount: float = Field(default=0.0, ge=0)
    final_amount: Optional[float] = Field(default=None, ge=0)

    # Status tracking
    status: ClaimStatus = ClaimStatus.PENDING
    status_history: List[StatusChange] = Field(default_factory=list)
    review_notes: Optional[str] = None
    reviewed_at: Optional[datetime] = None

    submitted_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def payable_amount(self) -> float:
        """Admin override wins over the triage estimate."""
        if self.final_amount is not None:
            return self.final_amount
        return self.estimated_amount

    @property
    def is_terminal(self) -> bool:
        return self.status in ClaimStatus.terminal_statuses()

    @property
    def analyzed_count(self) -> int:
        return len([a for a in self.damage_analyses if a.succeeded])


# ===================
# API Request/Response Models
# ===================

class ClaimSubmitResponse(BaseModel):
    """Response after claim submission."""
    message: str
    claim: Claim


class StatusUpdateRequest(BaseModel):
    """Admin status change."""
    status: ClaimStatus
    review_notes: Optional[str] = Field(default=None, alias="reviewNotes")
    final_amount: Optional[float] = Field(default=None, ge=0, alias="finalAmount")

    class Config:
        populate_by_name = True


class StatusUpdateResponse(BaseModel):
    message: str
    claim: Claim


class ClaimListResponse(BaseModel):
    claims: List[Claim]
    total_pages: int = Field(alias="totalPages")
    current_page: int = Field(alias="currentPage")
    total: int

    class Config:
        populate_by_name = True


class DeleteClaimResponse(BaseModel):
    message: str
    claim_id: str
    images_deleted: int
    images_failed: int
