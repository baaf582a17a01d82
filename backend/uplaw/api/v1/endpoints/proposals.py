"""
Proposal endpoints
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from uplaw.api.v1.deps import get_current_user, require_role
from uplaw.db.database import get_db
from uplaw.db.models import User, UserRole
from uplaw.db.schemas import ProposalCreate, ProposalRespondRequest, ProposalResponse, ProposalView
from uplaw.services import proposal_service

router = APIRouter()

client_only = require_role(UserRole.client)
lawyer_only = require_role(UserRole.lawyer)


@router.post("", response_model=ProposalResponse, status_code=status.HTTP_201_CREATED)
def create_proposal(
    payload: ProposalCreate,
    current_user: User = Depends(lawyer_only),
    db: Session = Depends(get_db)
):
    """
    Submit a proposal on a case the lawyer was invited to
    """
    return proposal_service.create_proposal(db, current_user.id, payload)


@router.get("/received", response_model=List[ProposalView])
def list_received_proposals(
    case_id: Optional[UUID] = Query(None),
    status: Optional[str] = Query(None),
    current_user: User = Depends(client_only),
    db: Session = Depends(get_db)
):
    return proposal_service.list_received_proposals(db, current_user.id, case_id, status)


@router.get("/sent", response_model=List[ProposalView])
def list_sent_proposals(
    status: Optional[str] = Query(None),
    current_user: User = Depends(lawyer_only),
    db: Session = Depends(get_db)
):
    return proposal_service.list_sent_proposals(db, current_user.id, status)


@router.get("/{proposal_id}", response_model=ProposalView)
def get_proposal(
    proposal_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return proposal_service.get_proposal(db, proposal_id, current_user.id, current_user.role)


@router.patch("/{proposal_id}/respond", response_model=ProposalResponse)
def respond_to_proposal(
    proposal_id: UUID,
    payload: ProposalRespondRequest,
    current_user: User = Depends(client_only),
    db: Session = Depends(get_db)
):
    """
    Accept or reject a proposal. Accepting assigns the lawyer, opens the
    case timeline and rejects the other open proposals.
    """
    return proposal_service.respond_to_proposal(
        db, proposal_id, current_user.id, payload.action, payload.response_note
    )


@router.patch("/{proposal_id}/withdraw", response_model=ProposalResponse)
def withdraw_proposal(
    proposal_id: UUID,
    current_user: User = Depends(lawyer_only),
    db: Session = Depends(get_db)
):
    return proposal_service.withdraw_proposal(db, proposal_id, current_user.id)
