"""
Case and invitation endpoints
"""
import json
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlalchemy.orm import Session

from uplaw.api.v1.deps import get_current_user, get_storage, require_role, to_incoming_files
from uplaw.db.database import get_db
from uplaw.db.models import User, UserRole
from uplaw.db.schemas import (
    CaseCreate,
    CaseResponse,
    CaseStatusUpdate,
    CaseWithSuggestions,
    InvitationResponse,
    InvitationStatusUpdate,
    InviteLawyersRequest,
    InviteLawyersResponse,
    ReceivedInvitationResponse,
    SuggestedLawyer,
)
from uplaw.services import case_service, invitation_service
from uplaw.services.storage_service import StorageGateway

router = APIRouter()

client_only = require_role(UserRole.client)
lawyer_only = require_role(UserRole.lawyer)

# ============================================================================
# Client: own cases
# ============================================================================

@router.post("", response_model=CaseResponse, status_code=status.HTTP_201_CREATED)
def create_case(
    payload: CaseCreate,
    current_user: User = Depends(client_only),
    db: Session = Depends(get_db)
):
    """
    Post a new case (starts in pending)
    """
    return case_service.create_case(db, current_user.id, payload)


def _form_languages(raw: Optional[str]) -> List[str]:
    """Accept a JSON array or a comma-separated list."""
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        parsed = raw.split(",")
    if isinstance(parsed, str):
        parsed = [parsed]
    return [str(lang).strip() for lang in parsed if str(lang).strip()]


@router.post("/with-voice-note", response_model=CaseResponse, status_code=status.HTTP_201_CREATED)
def create_case_with_voice_note(
    title: str = Form(...),
    description: str = Form(...),
    category: str = Form(...),
    budget_range: str = Form(...),
    province: str = Form(...),
    district: str = Form(...),
    court: Optional[str] = Form(None),
    urgency: Optional[str] = Form(None),
    preferred_languages: Optional[str] = Form(None),
    voice_note: Optional[UploadFile] = File(None),
    current_user: User = Depends(client_only),
    db: Session = Depends(get_db),
    storage: StorageGateway = Depends(get_storage)
):
    """
    Multipart variant of case creation with an optional audio `voice_note`
    """
    data = {
        "title": title,
        "description": description,
        "category": category,
        "budget_range": budget_range,
        "province": province,
        "district": district,
        "court": court,
        "preferred_languages": _form_languages(preferred_languages),
    }
    if urgency:
        data["urgency"] = urgency
    try:
        payload = CaseCreate(**data)
    except ValidationError as e:
        raise RequestValidationError(e.errors())

    files = to_incoming_files([voice_note] if voice_note is not None else [])
    return case_service.create_case(
        db, current_user.id, payload, storage=storage, voice_note=files[0] if files else None
    )


@router.get("", response_model=List[CaseWithSuggestions])
def list_cases(
    status: Optional[str] = Query(None, description="Filter by case status"),
    current_user: User = Depends(client_only),
    db: Session = Depends(get_db)
):
    return case_service.list_cases_for_client(db, current_user.id, status)

# ============================================================================
# Lawyer: invitations
# ============================================================================

@router.get("/received", response_model=List[ReceivedInvitationResponse])
def list_received_invitations(
    status: Optional[str] = Query(None, description="Filter by invitation status"),
    current_user: User = Depends(lawyer_only),
    db: Session = Depends(get_db)
):
    return invitation_service.list_received_invitations(db, current_user.id, status)


@router.patch("/invitations/{invitation_id}/status", response_model=InvitationResponse)
def respond_to_invitation(
    invitation_id: UUID,
    payload: InvitationStatusUpdate,
    current_user: User = Depends(lawyer_only),
    db: Session = Depends(get_db)
):
    return invitation_service.respond_to_invitation(db, invitation_id, current_user.id, payload.status)

# ============================================================================
# Single case
# ============================================================================

@router.get("/{case_id}", response_model=CaseResponse)
def get_case(
    case_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Case detail for its owner, an invited lawyer or the assigned lawyer
    """
    return case_service.get_case(db, case_id, current_user.id, current_user.role)


@router.get("/{case_id}/lawyers", response_model=List[SuggestedLawyer])
def get_suggested_lawyers(
    case_id: UUID,
    current_user: User = Depends(client_only),
    db: Session = Depends(get_db)
):
    return case_service.get_suggested_lawyers(db, case_id, current_user.id)


@router.post("/{case_id}/invite", response_model=InviteLawyersResponse)
def invite_lawyers(
    case_id: UUID,
    payload: InviteLawyersRequest,
    current_user: User = Depends(client_only),
    db: Session = Depends(get_db)
):
    return invitation_service.invite_lawyers(db, case_id, payload.lawyer_ids, current_user.id)


@router.patch("/{case_id}/status", response_model=CaseResponse)
def update_case_status(
    case_id: UUID,
    payload: CaseStatusUpdate,
    current_user: User = Depends(client_only),
    db: Session = Depends(get_db)
):
    return case_service.update_case_status(db, case_id, current_user.id, payload.status)
