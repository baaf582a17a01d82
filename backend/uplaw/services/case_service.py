"""
Case registry: creation, listing, role-gated reads and lawyer suggestions.
"""
from typing import Iterable, List, Optional
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, joinedload, selectinload

from uplaw.core.config import settings
from uplaw.core.logger import logger
from uplaw.db.models import (
    AccountStatus,
    Case,
    CaseInvitation,
    CaseStatus,
    LawyerPracticeArea,
    LawyerProfile,
    User,
    UserRole,
)
from uplaw.db.schemas import CaseCreate, CaseResponse
from uplaw.services import invitation_service
from uplaw.services.storage_service import IncomingFile, StorageGateway, delete_all, upload_all
from uplaw.utils.exceptions import BadRequestError, InternalServerError, NotFoundError, UnauthorizedError


def lawyer_summary(profile: LawyerProfile, detailed: bool = False) -> dict:
    summary = {
        "lawyer_id": profile.user_id,
        "full_name": profile.user.full_name,
        "areas_of_practice": profile.areas_of_practice,
        "years_of_experience": profile.years_of_experience,
        "city": profile.city,
        "professional_bio": profile.professional_bio,
    }
    if detailed:
        summary["court_jurisdiction"] = profile.court_jurisdiction
        summary["languages_spoken"] = profile.languages_spoken or []
    return summary


def _matching_profiles(db: Session, categories: Iterable[str]) -> List[LawyerProfile]:
    """Complete profiles of verified, active lawyers practising any of `categories`."""
    categories = [c for c in set(categories) if c]
    if not categories:
        return []

    return (
        db.query(LawyerProfile)
        .join(User, User.id == LawyerProfile.user_id)
        .filter(
            LawyerProfile.practice_areas.any(LawyerPracticeArea.area.in_(categories)),
            LawyerProfile.is_profile_complete.is_(True),
            User.role == UserRole.lawyer,
            User.account_status == AccountStatus.verified,
            User.is_deleted.is_(False),
        )
        .options(joinedload(LawyerProfile.user), selectinload(LawyerProfile.practice_areas))
        .order_by(User.full_name)
        .all()
    )


def _parse_case_status(status: Optional[str]) -> Optional[CaseStatus]:
    if not status:
        return None
    try:
        return CaseStatus(status)
    except ValueError:
        return None


def _check_voice_note(file: IncomingFile) -> None:
    if file.content_type not in settings.VOICE_NOTE_CONTENT_TYPES:
        raise BadRequestError("Only audio files (MP3, WAV, OGG, M4A, WEBM) are allowed")
    if file.size is not None and file.size > settings.VOICE_NOTE_MAX_BYTES:
        raise BadRequestError("Voice note exceeds the maximum allowed size")


def create_case(
    db: Session,
    client_id: UUID,
    payload: CaseCreate,
    storage: Optional[StorageGateway] = None,
    voice_note: Optional[IncomingFile] = None,
) -> Case:
    """
    Open a pending case. An optional voice note is uploaded first and its
    reference stored on the case; if the insert fails the blob is deleted.
    """
    case_id = uuid4()
    stored = []
    if voice_note is not None:
        if storage is None:
            raise InternalServerError("Storage is not configured")
        _check_voice_note(voice_note)
        stored = upload_all(storage, [voice_note], folder=str(case_id))

    case = Case(
        id=case_id,
        voice_note=stored[0].to_dict() if stored else None,
        client_id=client_id,
        title=payload.title,
        description=payload.description,
        category=payload.category,
        budget_range=payload.budget_range,
        province=payload.province,
        district=payload.district,
        court=payload.court,
        urgency=payload.urgency,
        preferred_languages=payload.preferred_languages,
        status=CaseStatus.pending,
    )
    try:
        db.add(case)
        db.commit()
    except Exception:
        db.rollback()
        delete_all(storage, [doc.ref_id for doc in stored])
        raise
    db.refresh(case)

    logger.info(f"Case {case.id} created by client {client_id} (voice note: {bool(stored)})")
    return case


def list_cases_for_client(db: Session, client_id: UUID, status: Optional[str] = None) -> List[dict]:
    """
    Client's cases, newest first, each with a short list of suggested
    lawyers. Suggestions for all cases come from one profile query and are
    matched to cases in memory.
    """
    query = db.query(Case).filter(Case.client_id == client_id)
    status_filter = _parse_case_status(status)
    if status_filter:
        query = query.filter(Case.status == status_filter)
    cases = query.order_by(Case.created_at.desc()).all()

    if not cases:
        return []

    profiles = _matching_profiles(db, (c.category for c in cases))
    limit = settings.SUGGESTED_LAWYERS_LIST_LIMIT

    results = []
    for case in cases:
        suggested = [
            lawyer_summary(profile)
            for profile in profiles
            if case.category in profile.areas_of_practice
        ][:limit]
        item = CaseResponse.model_validate(case).model_dump()
        item["suggested_lawyers"] = suggested
        item["suggested_lawyers_count"] = len(suggested)
        results.append(item)
    return results


def get_case(db: Session, case_id: UUID, user_id: UUID, role: UserRole) -> Case:
    """
    Clients see their own cases; lawyers see cases they were invited to or
    are assigned to. A lawyer opening a case marks their invitation viewed.
    """
    case = db.get(Case, case_id)
    if not case:
        raise NotFoundError("Case not found")

    if role == UserRole.client:
        if case.client_id != user_id:
            raise UnauthorizedError("You do not have permission to view this case")

    elif role == UserRole.lawyer:
        invitation = (
            db.query(CaseInvitation)
            .filter(CaseInvitation.case_id == case_id, CaseInvitation.lawyer_id == user_id)
            .first()
        )
        is_assigned = case.assigned_lawyer_id is not None and case.assigned_lawyer_id == user_id
        if not invitation and not is_assigned:
            raise UnauthorizedError("You do not have permission to view this case")
        if invitation:
            invitation_service.mark_viewed(db, invitation)

    return case


def get_suggested_lawyers(db: Session, case_id: UUID, client_id: UUID) -> List[dict]:
    case = db.get(Case, case_id)
    if not case:
        raise NotFoundError("Case not found")
    if case.client_id != client_id:
        raise UnauthorizedError("You do not have permission to access this case")

    return [lawyer_summary(profile, detailed=True) for profile in _matching_profiles(db, [case.category])]


def update_case_status(db: Session, case_id: UUID, client_id: UUID, new_status: str) -> Case:
    try:
        status = CaseStatus(new_status)
    except ValueError:
        raise BadRequestError("Invalid case status")

    case = db.query(Case).filter(Case.id == case_id, Case.client_id == client_id).first()
    if not case:
        raise NotFoundError("Case not found")

    case.status = status
    db.commit()
    db.refresh(case)

    logger.info(f"Case {case_id} status set to {status.value} by client {client_id}")
    return case

