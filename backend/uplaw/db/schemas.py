"""
Pydantic validation schemas
"""
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from uplaw.db.models import (
    BudgetRange,
    CaseOutcome,
    TimelinePhase,
    UrgencyLevel,
)

# ============================================================================
# Case Schemas
# ============================================================================

class CaseCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=2000)
    category: str = Field(..., min_length=1, max_length=100)
    budget_range: BudgetRange
    province: str = Field(..., min_length=1, max_length=100)
    district: str = Field(..., min_length=1, max_length=100)
    court: Optional[str] = Field(None, max_length=255)
    urgency: UrgencyLevel = UrgencyLevel.medium
    preferred_languages: List[str] = Field(default_factory=list)

    @field_validator("title", "description", "category", "province", "district", "court")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v


class CaseStatusUpdate(BaseModel):
    status: str


class VoiceNote(BaseModel):
    ref_id: str
    url: str
    original_name: Optional[str] = None
    file_size: Optional[int] = None
    mimetype: Optional[str] = None


class CaseResponse(BaseModel):
    id: UUID
    client_id: UUID
    title: str
    description: str
    voice_note: Optional[VoiceNote] = None
    category: str
    budget_range: str
    province: str
    district: str
    court: Optional[str] = None
    urgency: str
    preferred_languages: List[str] = []
    status: str
    assigned_lawyer_id: Optional[UUID] = None
    assigned_at: Optional[datetime] = None
    proposal_count: int
    invitation_count: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SuggestedLawyer(BaseModel):
    lawyer_id: UUID
    full_name: str
    areas_of_practice: List[str]
    years_of_experience: Optional[int] = None
    city: Optional[str] = None
    professional_bio: Optional[str] = None
    court_jurisdiction: Optional[str] = None
    languages_spoken: Optional[List[str]] = None


class CaseWithSuggestions(CaseResponse):
    suggested_lawyers: List[SuggestedLawyer] = []
    suggested_lawyers_count: int = 0


class CaseSummary(BaseModel):
    id: UUID
    title: str
    description: str
    category: str
    budget_range: str
    province: str
    district: str
    court: Optional[str] = None
    urgency: str
    status: str
    proposal_count: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

# ============================================================================
# Invitation Schemas
# ============================================================================

class InviteLawyersRequest(BaseModel):
    lawyer_ids: List[UUID] = Field(..., min_length=1)


class InviteLawyersResponse(BaseModel):
    invited: int
    skipped: int
    message: str


class InvitationStatusUpdate(BaseModel):
    status: str


class InvitationResponse(BaseModel):
    id: UUID
    case_id: UUID
    lawyer_id: UUID
    client_id: UUID
    status: str
    viewed_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ReceivedInvitationResponse(InvitationResponse):
    case: CaseSummary

# ============================================================================
# Proposal Schemas
# ============================================================================

class FeeStructure(BaseModel):
    total_proposed_fee: float = Field(..., ge=0)
    initial_consultation: float = Field(0, ge=0)
    documentation_fee: float = Field(0, ge=0)
    court_fees: float = Field(0, ge=0)
    additional_costs: float = Field(0, ge=0)
    expected_date: str = Field(..., min_length=1)


class ProposalCreate(BaseModel):
    case_id: UUID
    fee_structure: FeeStructure
    case_assessment: str = Field(..., min_length=1, max_length=2000)
    services_included: Optional[str] = Field(None, max_length=2000)
    experience_and_qualifications: Optional[str] = Field(None, max_length=2000)
    milestones: Optional[str] = Field(None, max_length=500)
    terms_and_conditions: Optional[str] = Field(None, max_length=3000)
    availability: Optional[str] = Field(None, max_length=500)


class ProposalRespondRequest(BaseModel):
    action: Literal["accept", "reject"]
    response_note: Optional[str] = Field(None, max_length=1000)


class ProposalResponse(BaseModel):
    id: UUID
    case_id: UUID
    lawyer_id: UUID
    client_id: UUID
    fee_structure: FeeStructure
    case_assessment: str
    services_included: Optional[str] = None
    experience_and_qualifications: Optional[str] = None
    milestones: Optional[str] = None
    terms_and_conditions: Optional[str] = None
    availability: Optional[str] = None
    status: str
    viewed_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    response_note: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProposalParty(BaseModel):
    id: UUID
    full_name: str


class ProposalView(ProposalResponse):
    """Read view: clients see the lawyer, lawyers see the client"""
    case: CaseSummary
    lawyer: Optional[SuggestedLawyer] = None
    client: Optional[ProposalParty] = None

# ============================================================================
# Timeline Schemas
# ============================================================================

class PhaseRemarks(BaseModel):
    judge_court_remarks: str = ""
    lawyer_remarks: str = ""
    opponent_remarks: str = ""

    @field_validator("judge_court_remarks", "lawyer_remarks", "opponent_remarks", mode="before")
    @classmethod
    def default_blank(cls, v):
        return "" if v is None else str(v).strip()


class IntakeSubmission(PhaseRemarks):
    phase: Literal[TimelinePhase.case_intake] = TimelinePhase.case_intake


class FiledSubmission(PhaseRemarks):
    phase: Literal[TimelinePhase.case_filed] = TimelinePhase.case_filed


class TrialPreparationSubmission(PhaseRemarks):
    phase: Literal[TimelinePhase.trial_preparation] = TimelinePhase.trial_preparation


class OutcomeSubmission(PhaseRemarks):
    phase: Literal[TimelinePhase.case_outcome] = TimelinePhase.case_outcome
    outcome: CaseOutcome


PhaseSubmission = Annotated[
    Union[IntakeSubmission, FiledSubmission, TrialPreparationSubmission, OutcomeSubmission],
    Field(discriminator="phase"),
]


class SubPhaseCreate(PhaseRemarks):
    name: str = Field(..., min_length=3, max_length=200)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v


class PhaseDocument(BaseModel):
    ref_id: str
    url: str
    original_name: Optional[str] = None
    file_size: Optional[int] = None
    mimetype: Optional[str] = None


class PhaseData(BaseModel):
    documents: List[PhaseDocument] = []
    judge_court_remarks: str = ""
    lawyer_remarks: str = ""
    opponent_remarks: str = ""
    submitted_at: Optional[datetime] = None
    submitted_by: Optional[UUID] = None
    outcome: Optional[CaseOutcome] = None


class SubPhaseResponse(BaseModel):
    sequence: int
    name: str
    documents: List[PhaseDocument] = []
    judge_court_remarks: str = ""
    lawyer_remarks: str = ""
    opponent_remarks: str = ""
    submitted_at: datetime
    submitted_by: Optional[UUID] = None

    model_config = ConfigDict(from_attributes=True)


class PhaseView(BaseModel):
    key: str
    name: str
    status: str
    data: Optional[PhaseData] = None
    sub_phases: Optional[List[SubPhaseResponse]] = None


class TimelineCase(BaseModel):
    case_id: UUID
    title: str
    category: str
    status: str


class TimelineResponse(BaseModel):
    case: TimelineCase
    progress: int
    phases: List[PhaseView]


class PhaseSubmitResponse(BaseModel):
    message: str
    progress: int
    phases: List[PhaseView]


class SubPhaseAddResponse(BaseModel):
    message: str
    progress: int
    sub_phase: SubPhaseResponse
    total_sub_phases: int
