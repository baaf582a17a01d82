"""
SQLAlchemy ORM Models
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TIMESTAMP,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from uplaw.db.database import Base
from uplaw.utils.helpers import utcnow

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _enum(enum_cls):
    """Store enum values (not member names) as VARCHAR"""
    return SQLEnum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=32,
    )


# ============================================================================
# Enums
# ============================================================================

class UserRole(str, enum.Enum):
    """User roles"""
    client = "client"
    lawyer = "lawyer"
    admin = "admin"

class AccountStatus(str, enum.Enum):
    """Account verification status"""
    pending = "pending"
    verified = "verified"
    suspended = "suspended"
    blocked = "blocked"

class CaseStatus(str, enum.Enum):
    """Case status enum"""
    pending = "pending"
    active = "active"
    assigned = "assigned"
    completed = "completed"
    cancelled = "cancelled"

class UrgencyLevel(str, enum.Enum):
    """Urgency levels"""
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"

class BudgetRange(str, enum.Enum):
    """Budget ranges offered to clients"""
    range_25k_50k = "25000-50000"
    range_50k_100k = "50000-100000"
    range_100k_200k = "100000-200000"
    range_200k_500k = "200000-500000"
    range_500k_plus = "500000+"

class InvitationStatus(str, enum.Enum):
    """Case invitation status"""
    pending = "pending"
    viewed = "viewed"
    accepted = "accepted"
    declined = "declined"

class ProposalStatus(str, enum.Enum):
    """Proposal status"""
    pending = "pending"
    viewed = "viewed"
    accepted = "accepted"
    rejected = "rejected"
    withdrawn = "withdrawn"

class PhaseStatus(str, enum.Enum):
    """Timeline phase status"""
    pending = "pending"
    ongoing = "ongoing"
    completed = "completed"

class TimelinePhase(str, enum.Enum):
    """Timeline phases in their fixed execution order (values are API slugs)"""
    case_intake = "case-intake"
    case_filed = "case-filed"
    trial_preparation = "trial-preparation"
    court_hearing = "court-hearing"
    case_outcome = "case-outcome"

class CaseOutcome(str, enum.Enum):
    """Final outcome recorded in the closing phase"""
    won = "won"
    settled = "settled"
    dismissed = "dismissed"


# Statuses from which an invitation still authorises a proposal
LIVE_INVITATION_STATUSES = (
    InvitationStatus.pending,
    InvitationStatus.viewed,
    InvitationStatus.accepted,
)
TERMINAL_INVITATION_STATUSES = (InvitationStatus.accepted, InvitationStatus.declined)
OPEN_PROPOSAL_STATUSES = (ProposalStatus.pending, ProposalStatus.viewed)
OPEN_CASE_STATUSES = (CaseStatus.pending, CaseStatus.active)


# ============================================================================
# Models
# ============================================================================

class User(Base):
    """Client, lawyer or admin account"""
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(100), nullable=False)
    role = Column(_enum(UserRole), nullable=False)
    account_status = Column(_enum(AccountStatus), nullable=False, default=AccountStatus.pending)
    is_deleted = Column(Boolean, nullable=False, default=False)

    created_at = Column(TIMESTAMP, nullable=False, default=utcnow)
    updated_at = Column(TIMESTAMP, nullable=False, default=utcnow, onupdate=utcnow)

    lawyer_profile = relationship("LawyerProfile", back_populates="user", uselist=False, cascade="all, delete-orphan")


class LawyerProfile(Base):
    """Public profile of a lawyer, used for matching"""
    __tablename__ = "lawyer_profiles"

    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    city = Column(String(100), nullable=True)
    years_of_experience = Column(Integer, nullable=True)
    professional_bio = Column(Text, nullable=True)
    court_jurisdiction = Column(String(255), nullable=True)
    languages_spoken = Column(JSONType, nullable=False, default=list)
    is_profile_complete = Column(Boolean, nullable=False, default=False)

    created_at = Column(TIMESTAMP, nullable=False, default=utcnow)
    updated_at = Column(TIMESTAMP, nullable=False, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="lawyer_profile")
    practice_areas = relationship("LawyerPracticeArea", back_populates="profile", cascade="all, delete-orphan")

    @property
    def areas_of_practice(self) -> list[str]:
        return sorted(pa.area for pa in self.practice_areas)


class LawyerPracticeArea(Base):
    """Declared area of practice (matched against Case.category)"""
    __tablename__ = "lawyer_practice_areas"
    __table_args__ = (
        UniqueConstraint("lawyer_id", "area", name="uq_lawyer_practice_area"),
        Index("ix_lawyer_practice_areas_area", "area"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    lawyer_id = Column(Uuid, ForeignKey("lawyer_profiles.user_id", ondelete="CASCADE"), nullable=False)
    area = Column(String(100), nullable=False)

    profile = relationship("LawyerProfile", back_populates="practice_areas")


class Case(Base):
    """Legal matter opened by a client"""
    __tablename__ = "cases"
    __table_args__ = (
        Index("ix_cases_client_status", "client_id", "status"),
        Index("ix_cases_category_location", "category", "province", "district"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Owner
    client_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Basic information
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    voice_note = Column(JSONType, nullable=True)  # stored audio reference, see StoredDocument
    category = Column(String(100), nullable=False)
    budget_range = Column(_enum(BudgetRange), nullable=False)

    # Location
    province = Column(String(100), nullable=False)
    district = Column(String(100), nullable=False)
    court = Column(String(255), nullable=True)

    # Preferences
    urgency = Column(_enum(UrgencyLevel), nullable=False, default=UrgencyLevel.medium)
    preferred_languages = Column(JSONType, nullable=False, default=list)

    # Status and assignment
    status = Column(_enum(CaseStatus), nullable=False, default=CaseStatus.pending)
    assigned_lawyer_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    assigned_at = Column(TIMESTAMP, nullable=True)

    # Denormalized counters (atomic increments only)
    proposal_count = Column(Integer, nullable=False, default=0)
    invitation_count = Column(Integer, nullable=False, default=0)

    created_at = Column(TIMESTAMP, nullable=False, default=utcnow)
    updated_at = Column(TIMESTAMP, nullable=False, default=utcnow, onupdate=utcnow)

    client = relationship("User", foreign_keys=[client_id])
    assigned_lawyer = relationship("User", foreign_keys=[assigned_lawyer_id])
    invitations = relationship("CaseInvitation", back_populates="case", cascade="all, delete-orphan")
    proposals = relationship("Proposal", back_populates="case", cascade="all, delete-orphan")
    timeline = relationship("CaseTimeline", back_populates="case", uselist=False, cascade="all, delete-orphan")


class CaseInvitation(Base):
    """Client -> lawyer invitation to engage with a case"""
    __tablename__ = "case_invitations"
    __table_args__ = (
        UniqueConstraint("case_id", "lawyer_id", name="uq_case_invitations_case_lawyer"),
        Index("ix_case_invitations_lawyer_status", "lawyer_id", "status", "created_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id = Column(Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    lawyer_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    client_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    status = Column(_enum(InvitationStatus), nullable=False, default=InvitationStatus.pending)
    viewed_at = Column(TIMESTAMP, nullable=True)
    responded_at = Column(TIMESTAMP, nullable=True)

    created_at = Column(TIMESTAMP, nullable=False, default=utcnow)
    updated_at = Column(TIMESTAMP, nullable=False, default=utcnow, onupdate=utcnow)

    case = relationship("Case", back_populates="invitations")
    lawyer = relationship("User", foreign_keys=[lawyer_id])


class Proposal(Base):
    """Lawyer -> client fee and terms proposal"""
    __tablename__ = "proposals"
    __table_args__ = (
        UniqueConstraint("case_id", "lawyer_id", name="uq_proposals_case_lawyer"),
        Index("ix_proposals_client_status", "client_id", "status"),
        Index("ix_proposals_lawyer_status", "lawyer_id", "status"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id = Column(Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    lawyer_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    client_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    # Details
    fee_structure = Column(JSONType, nullable=False)
    case_assessment = Column(Text, nullable=False)
    services_included = Column(Text, nullable=True)
    experience_and_qualifications = Column(Text, nullable=True)
    milestones = Column(Text, nullable=True)
    terms_and_conditions = Column(Text, nullable=True)
    availability = Column(Text, nullable=True)

    # Status
    status = Column(_enum(ProposalStatus), nullable=False, default=ProposalStatus.pending)
    viewed_at = Column(TIMESTAMP, nullable=True)
    responded_at = Column(TIMESTAMP, nullable=True)
    response_note = Column(Text, nullable=True)

    created_at = Column(TIMESTAMP, nullable=False, default=utcnow)
    updated_at = Column(TIMESTAMP, nullable=False, default=utcnow, onupdate=utcnow)

    case = relationship("Case", back_populates="proposals")
    lawyer = relationship("User", foreign_keys=[lawyer_id])
    client = relationship("User", foreign_keys=[client_id])


class CaseTimeline(Base):
    """
    Five-phase execution timeline, one per case.

    Each phase has a status column and (except the court hearing) a JSON data
    column. Every conditional write bumps `version`.
    """
    __tablename__ = "case_timelines"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id = Column(Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)

    intake_status = Column(_enum(PhaseStatus), nullable=False, default=PhaseStatus.ongoing)
    intake_data = Column(JSONType, nullable=True)

    filed_status = Column(_enum(PhaseStatus), nullable=False, default=PhaseStatus.pending)
    filed_data = Column(JSONType, nullable=True)

    trial_preparation_status = Column(_enum(PhaseStatus), nullable=False, default=PhaseStatus.pending)
    trial_preparation_data = Column(JSONType, nullable=True)

    court_hearing_status = Column(_enum(PhaseStatus), nullable=False, default=PhaseStatus.pending)
    court_hearing_sub_phase_count = Column(Integer, nullable=False, default=0)

    outcome_status = Column(_enum(PhaseStatus), nullable=False, default=PhaseStatus.pending)
    outcome_data = Column(JSONType, nullable=True)

    version = Column(Integer, nullable=False, default=1)

    created_at = Column(TIMESTAMP, nullable=False, default=utcnow)
    updated_at = Column(TIMESTAMP, nullable=False, default=utcnow, onupdate=utcnow)

    case = relationship("Case", back_populates="timeline")
    sub_phases = relationship(
        "CourtHearingSubPhase",
        back_populates="timeline",
        order_by="CourtHearingSubPhase.sequence",
        cascade="all, delete-orphan",
    )


class CourtHearingSubPhase(Base):
    """Append-only hearing event recorded while the court hearing phase is ongoing"""
    __tablename__ = "court_hearing_sub_phases"
    __table_args__ = (
        UniqueConstraint("timeline_id", "sequence", name="uq_sub_phases_timeline_sequence"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    timeline_id = Column(Uuid, ForeignKey("case_timelines.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)

    name = Column(String(200), nullable=False)
    documents = Column(JSONType, nullable=False, default=list)
    judge_court_remarks = Column(Text, nullable=False, default="")
    lawyer_remarks = Column(Text, nullable=False, default="")
    opponent_remarks = Column(Text, nullable=False, default="")
    submitted_at = Column(TIMESTAMP, nullable=False, default=utcnow)
    submitted_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    timeline = relationship("CaseTimeline", back_populates="sub_phases")
