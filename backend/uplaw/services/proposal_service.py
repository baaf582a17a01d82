"""
Proposal ledger: lawyers' offers on cases they were invited to, and the
client's accept / reject decision.

Accepting a proposal touches four records. It runs as a short saga:

    1. gate       proposal -> accepted and case -> assigned, one transaction
    2. timeline   create the case timeline (idempotent, retried, required)
    3. siblings   reject the other open proposals (retried, best effort)

If the gate fails nothing has changed. Once it commits, the acceptance
stands; a sibling sweep that keeps failing is logged and can be re-run.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, List, Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from uplaw.core.config import settings
from uplaw.core.logger import logger
from uplaw.db.models import (
    Case,
    CaseInvitation,
    CaseStatus,
    InvitationStatus,
    LawyerProfile,
    LIVE_INVITATION_STATUSES,
    OPEN_CASE_STATUSES,
    OPEN_PROPOSAL_STATUSES,
    Proposal,
    ProposalStatus,
    User,
    UserRole,
)
from uplaw.db.schemas import CaseSummary, ProposalCreate, ProposalResponse
from uplaw.services import timeline_service
from uplaw.services.case_service import lawyer_summary
from uplaw.utils.exceptions import (
    BadRequestError,
    InternalServerError,
    NotFoundError,
    UnauthorizedError,
    UplawError,
)
from uplaw.utils.helpers import utcnow

SIBLING_REJECTION_NOTE = "Another proposal was accepted"


@dataclass
class AcceptanceStep:
    name: str
    action: Callable[[], object]
    required: bool = True
    attempts: int = 1


def _run_step(db: Session, step: AcceptanceStep) -> None:
    last_err = None
    for attempt in range(1, step.attempts + 1):
        try:
            step.action()
            return
        except UplawError:
            raise
        except Exception as exc:
            db.rollback()
            last_err = exc
            logger.warning(f"Acceptance step '{step.name}' failed ({attempt}/{step.attempts}): {exc}")
            if attempt < step.attempts:
                time.sleep(attempt * settings.ACCEPTANCE_RETRY_BACKOFF_SECONDS)

    if step.required:
        raise InternalServerError(f"Failed to {step.name}") from last_err
    logger.error(f"Acceptance step '{step.name}' gave up after {step.attempts} attempts: {last_err}")


def _parse_proposal_status(status: Optional[str]) -> Optional[ProposalStatus]:
    if not status:
        return None
    try:
        return ProposalStatus(status)
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Create / read
# ---------------------------------------------------------------------------

def create_proposal(db: Session, lawyer_id: UUID, payload: ProposalCreate) -> Proposal:
    case = db.get(Case, payload.case_id)
    if not case:
        raise NotFoundError("Case not found")

    if case.status not in OPEN_CASE_STATUSES:
        raise BadRequestError("Cannot submit proposal to this case")

    invitation = (
        db.query(CaseInvitation)
        .filter(
            CaseInvitation.case_id == case.id,
            CaseInvitation.lawyer_id == lawyer_id,
            CaseInvitation.status.in_(LIVE_INVITATION_STATUSES),
        )
        .first()
    )
    if not invitation:
        raise UnauthorizedError("You must be invited to this case to submit a proposal")

    existing = (
        db.query(Proposal.id)
        .filter(Proposal.case_id == case.id, Proposal.lawyer_id == lawyer_id)
        .first()
    )
    if existing:
        raise BadRequestError("You have already submitted a proposal for this case")

    proposal = Proposal(
        case_id=case.id,
        lawyer_id=lawyer_id,
        client_id=case.client_id,
        fee_structure=payload.fee_structure.model_dump(),
        case_assessment=payload.case_assessment,
        services_included=payload.services_included,
        experience_and_qualifications=payload.experience_and_qualifications,
        milestones=payload.milestones,
        terms_and_conditions=payload.terms_and_conditions,
        availability=payload.availability,
        status=ProposalStatus.pending,
    )
    db.add(proposal)
    try:
        db.flush()
        db.execute(
            update(Case)
            .where(Case.id == case.id)
            .values(proposal_count=Case.proposal_count + 1)
            .execution_options(synchronize_session=False)
        )
        # Submitting a proposal is the lawyer's engagement with the invitation
        now = utcnow()
        db.execute(
            update(CaseInvitation)
            .where(
                CaseInvitation.id == invitation.id,
                CaseInvitation.status.in_((InvitationStatus.pending, InvitationStatus.viewed)),
            )
            .values(status=InvitationStatus.accepted, responded_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        raise BadRequestError("You have already submitted a proposal for this case")

    db.refresh(proposal)
    db.refresh(invitation)
    logger.info(f"Proposal {proposal.id} submitted by lawyer {lawyer_id} on case {case.id}")
    return proposal


def _with_lawyer(query):
    return query.options(
        joinedload(Proposal.lawyer)
        .joinedload(User.lawyer_profile)
        .selectinload(LawyerProfile.practice_areas)
    )


def _lawyer_view(user: User, detailed: bool = False) -> dict:
    if user.lawyer_profile is None:
        return {"lawyer_id": user.id, "full_name": user.full_name, "areas_of_practice": []}
    return lawyer_summary(user.lawyer_profile, detailed=detailed)


def _proposal_view(
    proposal: Proposal,
    with_lawyer: bool = False,
    with_client: bool = False,
    detailed: bool = False,
) -> dict:
    """Proposal with its case summary and the counterpart's details."""
    view = ProposalResponse.model_validate(proposal).model_dump()
    view["case"] = CaseSummary.model_validate(proposal.case).model_dump()
    if with_lawyer:
        view["lawyer"] = _lawyer_view(proposal.lawyer, detailed=detailed)
    if with_client:
        view["client"] = {"id": proposal.client.id, "full_name": proposal.client.full_name}
    return view


def list_received_proposals(
    db: Session,
    client_id: UUID,
    case_id: Optional[UUID] = None,
    status: Optional[str] = None,
) -> List[dict]:
    """Proposals on the client's cases, each with the proposing lawyer's profile."""
    query = _with_lawyer(
        db.query(Proposal)
        .filter(Proposal.client_id == client_id)
        .options(joinedload(Proposal.case))
    )
    if case_id:
        query = query.filter(Proposal.case_id == case_id)
    status_filter = _parse_proposal_status(status)
    if status_filter:
        query = query.filter(Proposal.status == status_filter)

    proposals = query.order_by(Proposal.created_at.desc()).all()
    return [_proposal_view(p, with_lawyer=True) for p in proposals]


def list_sent_proposals(db: Session, lawyer_id: UUID, status: Optional[str] = None) -> List[dict]:
    query = (
        db.query(Proposal)
        .filter(Proposal.lawyer_id == lawyer_id)
        .options(joinedload(Proposal.case), joinedload(Proposal.client))
    )
    status_filter = _parse_proposal_status(status)
    if status_filter:
        query = query.filter(Proposal.status == status_filter)

    proposals = query.order_by(Proposal.created_at.desc()).all()
    return [_proposal_view(p, with_client=True) for p in proposals]


def get_proposal(db: Session, proposal_id: UUID, user_id: UUID, role: UserRole) -> dict:
    """
    Visible to the owning client and the submitting lawyer. The client
    opening a pending proposal marks it viewed.

    Clients get the lawyer's full profile; lawyers get the client's name.
    """
    proposal = (
        _with_lawyer(db.query(Proposal))
        .options(joinedload(Proposal.case), joinedload(Proposal.client))
        .filter(Proposal.id == proposal_id)
        .first()
    )
    if not proposal:
        raise NotFoundError("Proposal not found")

    is_client = role == UserRole.client and proposal.client_id == user_id
    is_lawyer = role == UserRole.lawyer and proposal.lawyer_id == user_id
    if not is_client and not is_lawyer:
        raise UnauthorizedError("You do not have permission to view this proposal")

    if is_client:
        # Only a pending proposal moves; a concurrent accept or reject is kept
        now = utcnow()
        db.execute(
            update(Proposal)
            .where(Proposal.id == proposal.id, Proposal.status == ProposalStatus.pending)
            .values(status=ProposalStatus.viewed, viewed_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        db.refresh(proposal)

    return _proposal_view(proposal, with_lawyer=is_client, with_client=is_lawyer, detailed=True)


# ---------------------------------------------------------------------------
# Respond / withdraw
# ---------------------------------------------------------------------------

def _accept_gate(db: Session, proposal: Proposal, response_note: Optional[str]) -> None:
    """
    Compare-and-set the proposal to accepted and the case to assigned in
    one transaction. Loses cleanly to a concurrent acceptance on the same
    case.
    """
    now = utcnow()
    values = {"status": ProposalStatus.accepted, "responded_at": now, "updated_at": now}
    if response_note:
        values["response_note"] = response_note

    result = db.execute(
        update(Proposal)
        .where(Proposal.id == proposal.id, Proposal.status.in_(OPEN_PROPOSAL_STATUSES))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise BadRequestError("Proposal has already been responded to")

    result = db.execute(
        update(Case)
        .where(
            Case.id == proposal.case_id,
            Case.assigned_lawyer_id.is_(None),
            Case.status.in_(OPEN_CASE_STATUSES),
        )
        .values(
            status=CaseStatus.active,
            assigned_lawyer_id=proposal.lawyer_id,
            assigned_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise BadRequestError("A lawyer has already been assigned to this case")

    db.commit()


def _reject_siblings(db: Session, proposal: Proposal) -> int:
    now = utcnow()
    result = db.execute(
        update(Proposal)
        .where(
            Proposal.case_id == proposal.case_id,
            Proposal.id != proposal.id,
            Proposal.status.in_(OPEN_PROPOSAL_STATUSES),
        )
        .values(
            status=ProposalStatus.rejected,
            responded_at=now,
            response_note=SIBLING_REJECTION_NOTE,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    logger.info(f"Rejected {result.rowcount} sibling proposal(s) on case {proposal.case_id}")
    return result.rowcount


def _reject(db: Session, proposal: Proposal, response_note: Optional[str]) -> None:
    now = utcnow()
    values = {"status": ProposalStatus.rejected, "responded_at": now, "updated_at": now}
    if response_note:
        values["response_note"] = response_note

    result = db.execute(
        update(Proposal)
        .where(Proposal.id == proposal.id, Proposal.status.in_(OPEN_PROPOSAL_STATUSES))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise BadRequestError("Proposal has already been responded to")
    db.commit()


def respond_to_proposal(
    db: Session,
    proposal_id: UUID,
    client_id: UUID,
    action: str,
    response_note: Optional[str] = None,
) -> Proposal:
    if action not in ("accept", "reject"):
        raise BadRequestError("Action must be either 'accept' or 'reject'")

    proposal = (
        db.query(Proposal)
        .filter(Proposal.id == proposal_id, Proposal.client_id == client_id)
        .first()
    )
    if not proposal:
        raise NotFoundError("Proposal not found")

    if proposal.status not in OPEN_PROPOSAL_STATUSES:
        raise BadRequestError("Proposal has already been responded to")

    if action == "reject":
        _reject(db, proposal, response_note)
        logger.info(f"Proposal {proposal_id} rejected by client {client_id}")
    else:
        _accept_gate(db, proposal, response_note)
        logger.info(
            f"Proposal {proposal_id} accepted; case {proposal.case_id} assigned to lawyer {proposal.lawyer_id}"
        )

        steps = [
            AcceptanceStep(
                name="create case timeline",
                action=lambda: timeline_service.create_timeline(db, proposal.case_id),
                required=True,
                attempts=settings.ACCEPTANCE_STEP_ATTEMPTS,
            ),
            AcceptanceStep(
                name="reject sibling proposals",
                action=lambda: _reject_siblings(db, proposal),
                required=False,
                attempts=settings.ACCEPTANCE_STEP_ATTEMPTS,
            ),
        ]
        for step in steps:
            _run_step(db, step)

    db.refresh(proposal)
    return proposal


def withdraw_proposal(db: Session, proposal_id: UUID, lawyer_id: UUID) -> Proposal:
    proposal = (
        db.query(Proposal)
        .filter(Proposal.id == proposal_id, Proposal.lawyer_id == lawyer_id)
        .first()
    )
    if not proposal:
        raise NotFoundError("Proposal not found")

    if proposal.status == ProposalStatus.accepted:
        raise BadRequestError("Cannot withdraw an accepted proposal")

    if proposal.status == ProposalStatus.withdrawn:
        raise BadRequestError("Proposal has already been withdrawn")

    now = utcnow()
    result = db.execute(
        update(Proposal)
        .where(
            Proposal.id == proposal.id,
            Proposal.status.notin_((ProposalStatus.accepted, ProposalStatus.withdrawn)),
        )
        .values(status=ProposalStatus.withdrawn, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise BadRequestError("Proposal can no longer be withdrawn")

    db.execute(
        update(Case)
        .where(Case.id == proposal.case_id)
        .values(proposal_count=Case.proposal_count - 1)
        .execution_options(synchronize_session=False)
    )
    db.commit()

    db.refresh(proposal)
    logger.info(f"Proposal {proposal_id} withdrawn by lawyer {lawyer_id}")
    return proposal
