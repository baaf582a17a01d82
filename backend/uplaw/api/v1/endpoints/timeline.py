"""
Case timeline endpoints

Phase submissions are multipart: remark fields as form fields plus any
number of `files` parts.
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from uplaw.api.v1.deps import get_current_user, get_storage, require_role, to_incoming_files
from uplaw.db.database import get_db
from uplaw.db.models import User, UserRole
from uplaw.db.schemas import PhaseSubmitResponse, SubPhaseAddResponse, TimelineResponse
from uplaw.services import timeline_service
from uplaw.services.storage_service import StorageGateway

router = APIRouter()

lawyer_only = require_role(UserRole.lawyer)


@router.get("/{case_id}/timeline", response_model=TimelineResponse)
def get_timeline(
    case_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return timeline_service.get_timeline(db, case_id, current_user.id, current_user.role)


@router.post("/{case_id}/phases/court-hearing/subphases", response_model=SubPhaseAddResponse)
def add_court_hearing_sub_phase(
    case_id: UUID,
    name: Optional[str] = Form(None),
    judge_court_remarks: Optional[str] = Form(None),
    lawyer_remarks: Optional[str] = Form(None),
    opponent_remarks: Optional[str] = Form(None),
    files: Optional[List[UploadFile]] = File(None),
    current_user: User = Depends(lawyer_only),
    db: Session = Depends(get_db),
    storage: StorageGateway = Depends(get_storage)
):
    payload = {
        "name": name,
        "judge_court_remarks": judge_court_remarks,
        "lawyer_remarks": lawyer_remarks,
        "opponent_remarks": opponent_remarks,
    }
    return timeline_service.add_court_hearing_sub_phase(
        db, storage, case_id, payload, to_incoming_files(files), current_user.id
    )


@router.post("/{case_id}/phases/court-hearing/complete", response_model=PhaseSubmitResponse)
def complete_court_hearing(
    case_id: UUID,
    current_user: User = Depends(lawyer_only),
    db: Session = Depends(get_db)
):
    return timeline_service.complete_court_hearing(db, case_id, current_user.id)


@router.post("/{case_id}/phases/{phase_key}/submit", response_model=PhaseSubmitResponse)
def submit_phase(
    case_id: UUID,
    phase_key: str,
    judge_court_remarks: Optional[str] = Form(None),
    lawyer_remarks: Optional[str] = Form(None),
    opponent_remarks: Optional[str] = Form(None),
    outcome: Optional[str] = Form(None),
    files: Optional[List[UploadFile]] = File(None),
    current_user: User = Depends(lawyer_only),
    db: Session = Depends(get_db),
    storage: StorageGateway = Depends(get_storage)
):
    """
    Complete case-intake, case-filed, trial-preparation or case-outcome
    """
    payload = {
        "judge_court_remarks": judge_court_remarks,
        "lawyer_remarks": lawyer_remarks,
        "opponent_remarks": opponent_remarks,
        "outcome": outcome,
    }
    return timeline_service.submit_phase(
        db, storage, case_id, phase_key, payload, to_incoming_files(files), current_user.id
    )
