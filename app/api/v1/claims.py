# app/api/v1/claims.py
from fastapi import APIRouter, Depends, File, Form, Header, Query, UploadFile
from typing import List, Optional
from pydantic import ValidationError
import json

from app.models.claim import (
    Claim, ClaimCreate, ClaimListResponse, ClaimSubmitResponse, DeleteClaimResponse,
    ImageUpload, StatusUpdateRequest, StatusUpdateResponse, VehicleInfo,
)
from app.core.constants import DEFAULT_ACTOR
from app.core.dependencies import get_claim_service
from app.core.exceptions import ClaimValidationError
from app.core.logging import get_logger
from app.services.claim_service import ClaimService

logger = get_logger(__name__)
router = APIRouter()

# ===================
# Helpers
# ===================

_FORM_FIELDS = {
    "user_id": "userId",
    "vehicle_info": "vehicleInfo",
    "incident_description": "incidentDescription",
    "incident_date": "incidentDate",
    "location": "location",
}


def _first_error(exc: ValidationError, prefix: str = "") -> ClaimValidationError:
    error = exc.errors()[0]
    loc = [str(part) for part in error.get("loc", ())]
    if loc and loc[0] in _FORM_FIELDS:
        loc[0] = _FORM_FIELDS[loc[0]]
    field = ".".join([prefix, *loc] if prefix else loc) or None
    return ClaimValidationError(f"{field}: {error.get('msg')}" if field else error.get("msg"), field=field)


def _parse_vehicle_info(raw: Optional[str]) -> VehicleInfo:
    if not raw:
        raise ClaimValidationError("Missing required field: vehicleInfo", field="vehicleInfo")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        raise ClaimValidationError("vehicleInfo must be a JSON object", field="vehicleInfo")
    if not isinstance(data, dict):
        raise ClaimValidationError("vehicleInfo must be a JSON object", field="vehicleInfo")
    try:
        return VehicleInfo.model_validate(data)
    except ValidationError as e:
        raise _first_error(e, prefix="vehicleInfo")


# ===================
# Endpoints
# ===================

@router.post("/submit", response_model=ClaimSubmitResponse, status_code=201)
async def submit_claim(
    user_id: Optional[str] = Form(None, alias="userId"),
    vehicle_info: Optional[str] = Form(None, alias="vehicleInfo"),
    incident_description: Optional[str] = Form(None, alias="incidentDescription"),
    incident_date: Optional[str] = Form(None, alias="incidentDate"),
    location: Optional[str] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    service: ClaimService = Depends(get_claim_service)
):
    """Submit a new claim with up to five damage photos."""
    required = {
        "userId": user_id,
        "vehicleInfo": vehicle_info,
        "incidentDescription": incident_description,
        "incidentDate": incident_date,
    }
    missing = [name for name, value in required.items() if not value]
    if missing:
        raise ClaimValidationError(
            f"Missing required fields: {', '.join(missing)}", field=missing[0]
        )

    try:
        payload = ClaimCreate(
            user_id=user_id,
            vehicle_info=_parse_vehicle_info(vehicle_info),
            incident_description=incident_description,
            incident_date=incident_date,
            location=location or None,
        )
    except ValidationError as e:
        raise _first_error(e)

    uploads = [f for f in (images or []) if f.filename]
    if len(uploads) > service.config.MAX_IMAGES_PER_CLAIM:
        raise ClaimValidationError(
            f"At most {service.config.MAX_IMAGES_PER_CLAIM} images are allowed", field="images"
        )

    max_bytes = service.config.max_image_size_bytes
    image_uploads = []
    for upload in uploads:
        # Reject on the parsed part size before buffering the bytes
        if upload.size is not None and upload.size > max_bytes:
            raise ClaimValidationError(
                f"Image {upload.filename} exceeds {service.config.MAX_IMAGE_SIZE_MB}MB",
                field="images"
            )
        image_uploads.append(ImageUpload(
            filename=upload.filename,
            content_type=upload.content_type or "",
            data=await upload.read(),
        ))

    claim = await service.submit_claim(payload, image_uploads)
    return ClaimSubmitResponse(message="Claim submitted successfully", claim=claim)


@router.get("/user/{user_id}", response_model=ClaimListResponse)
async def list_user_claims(
    user_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = None,
    service: ClaimService = Depends(get_claim_service)
):
    """List a user's claims, newest first."""
    return service.list_user_claims(user_id, page=page, limit=limit, status=status)


@router.get("/{claim_id}", response_model=Claim)
async def get_claim(claim_id: str, service: ClaimService = Depends(get_claim_service)):
    """Get complete claim details."""
    return service.get_claim(claim_id)


@router.patch("/{claim_id}/status", response_model=StatusUpdateResponse)
async def update_claim_status(
    claim_id: str,
    request: StatusUpdateRequest,
    actor: Optional[str] = Query(None),
    x_actor: Optional[str] = Header(None),
    service: ClaimService = Depends(get_claim_service)
):
    """Update claim status (admin action)."""
    claim = await service.update_status(
        claim_id,
        request.status,
        review_notes=request.review_notes,
        final_amount=request.final_amount,
        actor=actor or x_actor or DEFAULT_ACTOR,
    )
    return StatusUpdateResponse(message="Claim status updated successfully", claim=claim)


@router.delete("/{claim_id}", response_model=DeleteClaimResponse)
async def delete_claim(claim_id: str, service: ClaimService = Depends(get_claim_service)):
    """Delete a claim and its stored images (admin action)."""
    return await service.delete_claim(claim_id)
