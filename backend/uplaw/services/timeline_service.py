"""
services/timeline_service.py

Five-phase case timeline:

    case-intake -> case-filed -> trial-preparation -> court-hearing -> case-outcome

Every transition is a single conditional UPDATE against the timeline row
(compare-and-set on the phase status), so two concurrent submissions for the
same phase cannot both win and a crash can never leave two phases ongoing.

Files are uploaded before the transition and deleted again if the
transition does not apply.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Union
from uuid import UUID

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import case as sql_case, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from uplaw.core.logger import logger
from uplaw.db.models import (
    Case,
    CaseStatus,
    CaseTimeline,
    CourtHearingSubPhase,
    PhaseStatus,
    TimelinePhase,
    UserRole,
)
from uplaw.db.schemas import (
    OutcomeSubmission,
    PhaseSubmission,
    SubPhaseCreate,
    SubPhaseResponse,
)
from uplaw.services.storage_service import (
    IncomingFile,
    StorageGateway,
    StoredDocument,
    delete_all,
    upload_all,
)
from uplaw.utils.exceptions import BadRequestError, ForbiddenError, NotFoundError
from uplaw.utils.helpers import utcnow


# ---------------------------------------------------------------------------
# Phase table
# ---------------------------------------------------------------------------

PHASE_ORDER: List[TimelinePhase] = list(TimelinePhase)

PHASE_NAMES = {
    TimelinePhase.case_intake: "Case Intake",
    TimelinePhase.case_filed: "Case Filed",
    TimelinePhase.trial_preparation: "Trial Preparation",
    TimelinePhase.court_hearing: "Court Hearing",
    TimelinePhase.case_outcome: "Case Outcome/Closure",
}

_STATUS_COLUMNS = {
    TimelinePhase.case_intake: CaseTimeline.intake_status,
    TimelinePhase.case_filed: CaseTimeline.filed_status,
    TimelinePhase.trial_preparation: CaseTimeline.trial_preparation_status,
    TimelinePhase.court_hearing: CaseTimeline.court_hearing_status,
    TimelinePhase.case_outcome: CaseTimeline.outcome_status,
}

# The court hearing keeps its entries in CourtHearingSubPhase instead
_DATA_COLUMNS = {
    TimelinePhase.case_intake: CaseTimeline.intake_data,
    TimelinePhase.case_filed: CaseTimeline.filed_data,
    TimelinePhase.trial_preparation: CaseTimeline.trial_preparation_data,
    TimelinePhase.case_outcome: CaseTimeline.outcome_data,
}

_submission_adapter = TypeAdapter(PhaseSubmission)


def next_phase(phase: TimelinePhase) -> Optional[TimelinePhase]:
    index = PHASE_ORDER.index(phase)
    if index + 1 < len(PHASE_ORDER):
        return PHASE_ORDER[index + 1]
    return None


def phase_status(timeline: CaseTimeline, phase: TimelinePhase) -> PhaseStatus:
    return PhaseStatus(getattr(timeline, _STATUS_COLUMNS[phase].key))


def calculate_progress(timeline: CaseTimeline) -> int:
    completed = sum(1 for phase in PHASE_ORDER if phase_status(timeline, phase) == PhaseStatus.completed)
    return round(100 * completed / len(PHASE_ORDER))


def resolve_phase(phase_key: Union[str, TimelinePhase]) -> TimelinePhase:
    try:
        return TimelinePhase(phase_key)
    except ValueError:
        valid = ", ".join(p.value for p in PHASE_ORDER)
        raise BadRequestError(f"Phase key must be one of: {valid}")


def parse_phase_submission(phase: TimelinePhase, payload: Optional[Dict[str, Any]]) -> PhaseSubmission:
    """
    Build the typed submission for a phase. The court hearing phase has no
    submission variant; its entries go through add_court_hearing_sub_phase.
    """
    if phase == TimelinePhase.court_hearing:
        raise BadRequestError("Court hearing phase must be managed via subphases endpoint")

    data = {k: v for k, v in (payload or {}).items() if v is not None}
    data["phase"] = phase
    try:
        return _submission_adapter.validate_python(data)
    except ValidationError as e:
        if phase == TimelinePhase.case_outcome and any(err["loc"][-1] == "outcome" for err in e.errors()):
            raise BadRequestError("Valid outcome (won, settled, dismissed) is required for case outcome phase")
        raise BadRequestError(e.errors()[0]["msg"])


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _get_case(db: Session, case_id: UUID) -> Case:
    case = db.get(Case, case_id)
    if not case:
        raise NotFoundError("Case not found")
    return case


def _ensure_assigned_lawyer(case: Case, lawyer_id: UUID, detail: str) -> None:
    if not case.assigned_lawyer_id or case.assigned_lawyer_id != lawyer_id:
        raise ForbiddenError(detail)


def _load_timeline(db: Session, case_id: UUID) -> Optional[CaseTimeline]:
    # Conditional writes bypass the identity map; drop cached state first.
    db.expire_all()
    return db.query(CaseTimeline).filter(CaseTimeline.case_id == case_id).first()


def _timeline_exists(db: Session, case_id: UUID) -> bool:
    return db.execute(
        select(CaseTimeline.id).where(CaseTimeline.case_id == case_id)
    ).first() is not None


def _build_phase_data(
    submission: PhaseSubmission,
    documents: List[StoredDocument],
    lawyer_id: UUID,
) -> dict:
    data = {
        "documents": [doc.to_dict() for doc in documents],
        "judge_court_remarks": submission.judge_court_remarks,
        "lawyer_remarks": submission.lawyer_remarks,
        "opponent_remarks": submission.opponent_remarks,
        "submitted_at": utcnow().isoformat(),
        "submitted_by": str(lawyer_id),
    }
    if isinstance(submission, OutcomeSubmission):
        data["outcome"] = submission.outcome.value
    return data


def _complete_phase(
    db: Session,
    case_id: UUID,
    phase: TimelinePhase,
    phase_data: Optional[dict] = None,
    extra_conditions: Iterable = (),
) -> bool:
    """
    Atomically mark `phase` completed and activate the next phase if it is
    still pending. Applies only while `phase` is ongoing and the next phase
    is not already ongoing. Returns True when the row was updated.
    """
    status_col = _STATUS_COLUMNS[phase]
    values = {
        status_col.key: PhaseStatus.completed,
        CaseTimeline.version.key: CaseTimeline.version + 1,
        CaseTimeline.updated_at.key: utcnow(),
    }
    if phase_data is not None:
        values[_DATA_COLUMNS[phase].key] = phase_data

    conditions = [
        CaseTimeline.case_id == case_id,
        status_col == PhaseStatus.ongoing,
        *extra_conditions,
    ]

    following = next_phase(phase)
    if following is not None:
        next_col = _STATUS_COLUMNS[following]
        values[next_col.key] = sql_case(
            (next_col == PhaseStatus.pending, PhaseStatus.ongoing.value),
            else_=next_col,
        )
        conditions.append(next_col != PhaseStatus.ongoing)

    result = db.execute(
        update(CaseTimeline)
        .where(*conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def build_phase_views(timeline: CaseTimeline) -> List[dict]:
    views = []
    for phase in PHASE_ORDER:
        view = {
            "key": phase.value,
            "name": PHASE_NAMES[phase],
            "status": phase_status(timeline, phase).value,
        }
        if phase == TimelinePhase.court_hearing:
            view["sub_phases"] = [
                SubPhaseResponse.model_validate(sp).model_dump() for sp in timeline.sub_phases
            ]
        else:
            view["data"] = getattr(timeline, _DATA_COLUMNS[phase].key)
        views.append(view)
    return views


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

def create_timeline(db: Session, case_id: UUID) -> CaseTimeline:
    """
    Create the timeline for a case, or return the existing one unchanged.
    Commits.
    """
    existing = db.query(CaseTimeline).filter(CaseTimeline.case_id == case_id).first()
    if existing:
        return existing

    _get_case(db, case_id)

    timeline = CaseTimeline(
        case_id=case_id,
        intake_status=PhaseStatus.ongoing,
        filed_status=PhaseStatus.pending,
        trial_preparation_status=PhaseStatus.pending,
        court_hearing_status=PhaseStatus.pending,
        court_hearing_sub_phase_count=0,
        outcome_status=PhaseStatus.pending,
        version=1,
    )
    db.add(timeline)
    try:
        db.commit()
    except IntegrityError:
        # Lost the race to a concurrent creator; theirs is the timeline.
        db.rollback()
        existing = db.query(CaseTimeline).filter(CaseTimeline.case_id == case_id).first()
        if existing is None:
            raise
        return existing

    logger.info(f"Timeline created for case {case_id}")
    return timeline


def get_timeline(db: Session, case_id: UUID, user_id: UUID, role: UserRole) -> dict:
    """
    Timeline with case summary and progress, visible to the owning client
    and the assigned lawyer only.
    """
    case = _get_case(db, case_id)

    if role == UserRole.client:
        if case.client_id != user_id:
            raise ForbiddenError("You can only view timeline for your own cases")
    elif role == UserRole.lawyer:
        if not case.assigned_lawyer_id or case.assigned_lawyer_id != user_id:
            raise ForbiddenError("You can only view timeline for cases assigned to you")
    else:
        raise ForbiddenError("Invalid role for this operation")

    timeline = db.query(CaseTimeline).filter(CaseTimeline.case_id == case_id).first()
    if not timeline:
        raise NotFoundError("Timeline not found for this case")

    return {
        "case": {
            "case_id": case.id,
            "title": case.title,
            "category": case.category,
            "status": CaseStatus(case.status).value,
        },
        "progress": calculate_progress(timeline),
        "phases": build_phase_views(timeline),
    }


def submit_phase(
    db: Session,
    storage: StorageGateway,
    case_id: UUID,
    phase_key: Union[str, TimelinePhase],
    payload: Optional[Dict[str, Any]],
    files: Optional[List[IncomingFile]],
    lawyer_id: UUID,
) -> dict:
    """
    Submit data for case-intake, case-filed, trial-preparation or
    case-outcome. Completing case-outcome closes the case.
    """
    phase = resolve_phase(phase_key)
    if phase == TimelinePhase.court_hearing:
        raise BadRequestError("Court hearing phase must be managed via subphases endpoint")

    case = _get_case(db, case_id)
    _ensure_assigned_lawyer(case, lawyer_id, "Only the assigned lawyer can submit phase data")

    submission = parse_phase_submission(phase, payload)

    documents = upload_all(storage, files, folder=str(case_id))
    ref_ids = [doc.ref_id for doc in documents]

    try:
        applied = _complete_phase(db, case_id, phase, _build_phase_data(submission, documents, lawyer_id))
        if not applied:
            if not _timeline_exists(db, case_id):
                raise NotFoundError("Timeline not found for this case")
            raise BadRequestError("Phase is not in ongoing state or already completed")

        if phase == TimelinePhase.case_outcome:
            db.execute(
                update(Case)
                .where(Case.id == case_id)
                .values(status=CaseStatus.completed, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
        db.commit()
    except Exception:
        db.rollback()
        delete_all(storage, ref_ids)
        raise

    logger.info(f"Phase {phase.value} completed for case {case_id} by {lawyer_id} ({len(documents)} documents)")
    if phase == TimelinePhase.case_outcome:
        logger.info(f"Case {case_id} closed with outcome {submission.outcome.value}")

    timeline = _load_timeline(db, case_id)
    return {
        "message": "Phase submitted successfully",
        "progress": calculate_progress(timeline),
        "phases": build_phase_views(timeline),
    }


def add_court_hearing_sub_phase(
    db: Session,
    storage: StorageGateway,
    case_id: UUID,
    payload: Optional[Dict[str, Any]],
    files: Optional[List[IncomingFile]],
    lawyer_id: UUID,
) -> dict:
    """
    Append a hearing event to the court hearing phase. Entries are never
    edited or removed; their order is the order in which appends commit.
    """
    case = _get_case(db, case_id)
    _ensure_assigned_lawyer(case, lawyer_id, "Only the assigned lawyer can add court hearing subphases")

    payload = payload or {}
    if not str(payload.get("name") or "").strip():
        raise BadRequestError("Subphase name is required")
    try:
        entry = SubPhaseCreate.model_validate({k: v for k, v in payload.items() if v is not None})
    except ValidationError as e:
        raise BadRequestError(e.errors()[0]["msg"])

    documents = upload_all(storage, files, folder=str(case_id))
    ref_ids = [doc.ref_id for doc in documents]

    try:
        # Claiming the next sequence number is the conditional append itself
        result = db.execute(
            update(CaseTimeline)
            .where(
                CaseTimeline.case_id == case_id,
                CaseTimeline.court_hearing_status == PhaseStatus.ongoing,
            )
            .values(
                court_hearing_sub_phase_count=CaseTimeline.court_hearing_sub_phase_count + 1,
                version=CaseTimeline.version + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            if not _timeline_exists(db, case_id):
                raise NotFoundError("Timeline not found for this case")
            raise BadRequestError(
                "Court hearing phase is not ongoing. Can only add subphases when phase is ongoing."
            )

        timeline_id, sequence = db.execute(
            select(CaseTimeline.id, CaseTimeline.court_hearing_sub_phase_count)
            .where(CaseTimeline.case_id == case_id)
        ).one()

        sub_phase = CourtHearingSubPhase(
            timeline_id=timeline_id,
            sequence=sequence,
            name=entry.name,
            documents=[doc.to_dict() for doc in documents],
            judge_court_remarks=entry.judge_court_remarks,
            lawyer_remarks=entry.lawyer_remarks,
            opponent_remarks=entry.opponent_remarks,
            submitted_at=utcnow(),
            submitted_by=lawyer_id,
        )
        db.add(sub_phase)
        db.commit()
    except Exception:
        db.rollback()
        delete_all(storage, ref_ids)
        raise

    logger.info(f"Court hearing subphase #{sequence} '{entry.name}' added to case {case_id}")

    timeline = _load_timeline(db, case_id)
    return {
        "message": "Court hearing subphase added successfully",
        "progress": calculate_progress(timeline),
        "sub_phase": SubPhaseResponse.model_validate(sub_phase).model_dump(),
        "total_sub_phases": timeline.court_hearing_sub_phase_count,
    }


def complete_court_hearing(db: Session, case_id: UUID, lawyer_id: UUID) -> dict:
    """
    Close the court hearing phase (needs at least one subphase) and open
    the outcome phase.
    """
    case = _get_case(db, case_id)
    _ensure_assigned_lawyer(case, lawyer_id, "Only the assigned lawyer can complete court hearing phase")

    timeline = _load_timeline(db, case_id)
    if not timeline:
        raise NotFoundError("Timeline not found for this case")

    if timeline.court_hearing_sub_phase_count < 1:
        raise BadRequestError("At least one court hearing subphase is required before completing this phase")

    try:
        applied = _complete_phase(
            db,
            case_id,
            TimelinePhase.court_hearing,
            extra_conditions=[CaseTimeline.court_hearing_sub_phase_count >= 1],
        )
        if not applied:
            raise BadRequestError("Court hearing phase is not ongoing or already completed")
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Court hearing completed for case {case_id} by {lawyer_id}")

    timeline = _load_timeline(db, case_id)
    return {
        "message": "Court hearing phase completed successfully",
        "progress": calculate_progress(timeline),
        "phases": build_phase_views(timeline),
    }
