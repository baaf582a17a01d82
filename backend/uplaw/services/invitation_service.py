"""
Invitation ledger: which lawyers a client has invited to a case.
"""
from typing import List, Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from uplaw.core.logger import logger
from uplaw.db.models import (
    AccountStatus,
    Case,
    CaseInvitation,
    InvitationStatus,
    OPEN_CASE_STATUSES,
    TERMINAL_INVITATION_STATUSES,
    User,
    UserRole,
)
from uplaw.utils.exceptions import BadRequestError, ForbiddenError, NotFoundError
from uplaw.utils.helpers import utcnow


def invite_lawyers(db: Session, case_id: UUID, lawyer_ids: List[UUID], client_id: UUID) -> dict:
    """
    Invite verified lawyers to a case.

    Each invitation commits together with its +1 on the case's
    invitation_count, so the counter always matches the stored rows.
    Lawyers already invited hit the (case_id, lawyer_id) unique constraint
    and are counted as skipped.
    """
    case = db.get(Case, case_id)
    if not case:
        raise NotFoundError("Case not found")

    if case.client_id != client_id:
        raise ForbiddenError("You do not have permission to invite lawyers to this case")

    if case.status not in OPEN_CASE_STATUSES:
        raise BadRequestError("Cannot invite lawyers to this case")

    requested = list(dict.fromkeys(lawyer_ids))
    valid_ids = set(
        row.id
        for row in db.query(User.id).filter(
            User.id.in_(requested),
            User.role == UserRole.lawyer,
            User.account_status == AccountStatus.verified,
            User.is_deleted.is_(False),
        )
    )
    if not valid_ids:
        raise BadRequestError("No valid lawyers found to invite")

    invited = 0
    skipped = 0
    for lawyer_id in (lid for lid in requested if lid in valid_ids):
        try:
            db.add(CaseInvitation(
                case_id=case_id,
                lawyer_id=lawyer_id,
                client_id=client_id,
                status=InvitationStatus.pending,
            ))
            db.flush()
            db.execute(
                update(Case)
                .where(Case.id == case_id)
                .values(invitation_count=Case.invitation_count + 1)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            invited += 1
        except IntegrityError:
            db.rollback()
            skipped += 1

    db.refresh(case)
    logger.info(f"Case {case_id}: invited {invited} lawyer(s), skipped {skipped}")

    return {
        "invited": invited,
        "skipped": skipped,
        "message": f"Successfully invited {invited} lawyer(s)",
    }


def list_received_invitations(db: Session, lawyer_id: UUID, status: Optional[str] = None) -> List[CaseInvitation]:
    """Invitations received by a lawyer, newest first, with their case loaded."""
    query = (
        db.query(CaseInvitation)
        .join(Case, Case.id == CaseInvitation.case_id)
        .filter(CaseInvitation.lawyer_id == lawyer_id)
        .options(joinedload(CaseInvitation.case))
    )
    if status in {s.value for s in InvitationStatus}:
        query = query.filter(CaseInvitation.status == InvitationStatus(status))

    return query.order_by(CaseInvitation.created_at.desc()).all()


def respond_to_invitation(db: Session, invitation_id: UUID, lawyer_id: UUID, new_status: str) -> CaseInvitation:
    try:
        status = InvitationStatus(new_status)
    except ValueError:
        raise BadRequestError("Invalid invitation status")

    invitation = (
        db.query(CaseInvitation)
        .filter(CaseInvitation.id == invitation_id, CaseInvitation.lawyer_id == lawyer_id)
        .first()
    )
    if not invitation:
        raise NotFoundError("Invitation not found")

    now = utcnow()
    values = {"status": status, "updated_at": now}
    if status in TERMINAL_INVITATION_STATUSES:
        values["responded_at"] = now
    elif status == InvitationStatus.viewed:
        values["viewed_at"] = now

    # Conditional on the stored status, so a concurrent accept or decline wins
    result = db.execute(
        update(CaseInvitation)
        .where(
            CaseInvitation.id == invitation.id,
            CaseInvitation.status.notin_(TERMINAL_INVITATION_STATUSES),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise BadRequestError("Invitation has already been responded to")

    db.commit()
    db.refresh(invitation)

    logger.info(f"Invitation {invitation_id} set to {status.value} by lawyer {lawyer_id}")
    return invitation


def mark_viewed(db: Session, invitation: CaseInvitation) -> CaseInvitation:
    """pending -> viewed; any other state is left alone."""
    now = utcnow()
    result = db.execute(
        update(CaseInvitation)
        .where(CaseInvitation.id == invitation.id, CaseInvitation.status == InvitationStatus.pending)
        .values(status=InvitationStatus.viewed, viewed_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount:
        logger.info(f"Invitation {invitation.id} viewed")
    db.refresh(invitation)
    return invitation
