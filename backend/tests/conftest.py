"""
Shared pytest fixtures for the UPLAW backend tests.

Provides:
- In-memory SQLite engine / session per test
- User, lawyer and case factories
- FakeStorage: an in-memory storage gateway that can be told to fail
- API client wired to the same database and storage, plus JWT headers
"""
import io
import os
import uuid
from datetime import datetime, timedelta, timezone

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import jwt
import pytest
from fastapi.testclient import TestClient

from uplaw.core.config import settings
from uplaw.db.database import Base, build_session_factory, create_db_engine, init_db
from uplaw.db.models import (
    AccountStatus,
    BudgetRange,
    LawyerPracticeArea,
    LawyerProfile,
    User,
    UserRole,
)
from uplaw.db.schemas import CaseCreate, FeeStructure, ProposalCreate
from uplaw.main import create_app
from uplaw.services import case_service, invitation_service, proposal_service
from uplaw.services.storage_service import IncomingFile, StoredDocument
from uplaw.utils.exceptions import UploadFailedError


# ============================================================================
# Storage double
# ============================================================================

class FakeStorage:
    """
    In-memory storage gateway.

    `objects` holds every blob currently stored; set `fail_on_upload` to the
    1-based number of the upload call that should fail.
    """

    def __init__(self):
        self.objects = {}
        self.deleted = []
        self.upload_calls = 0
        self.fail_on_upload = None

    def upload(self, file, folder=""):
        self.upload_calls += 1
        if self.fail_on_upload == self.upload_calls:
            raise UploadFailedError("Failed to upload file to cloud storage")

        ref_id = f"{folder}/{uuid.uuid4().hex}-{file.filename}"
        self.objects[ref_id] = file.fileobj.read()
        return StoredDocument(
            ref_id=ref_id,
            url=f"https://files.test/{ref_id}",
            original_name=file.filename,
            file_size=file.size,
            mimetype=file.content_type,
        )

    def delete(self, ref_id):
        self.objects.pop(ref_id, None)
        self.deleted.append(ref_id)

    def health_check(self):
        return "ok", "in-memory storage"


def make_files(*names):
    """IncomingFile list with small PDF-ish payloads."""
    return [
        IncomingFile(
            filename=name,
            content_type="application/pdf",
            fileobj=io.BytesIO(f"%PDF {name}".encode()),
            size=len(f"%PDF {name}"),
        )
        for name in names
    ]


# ============================================================================
# Database
# ============================================================================

@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture(autouse=True)
def no_retry_backoff(monkeypatch):
    monkeypatch.setattr(settings, "ACCEPTANCE_RETRY_BACKOFF_SECONDS", 0)


# ============================================================================
# Factories
# ============================================================================

@pytest.fixture
def make_user(db):
    def _make_user(role=UserRole.client, full_name=None, account_status=AccountStatus.verified, is_deleted=False):
        full_name = full_name or f"{role.value.title()} {uuid.uuid4().hex[:6]}"
        user = User(
            email=f"{uuid.uuid4().hex[:10]}@example.com",
            full_name=full_name,
            role=role,
            account_status=account_status,
            is_deleted=is_deleted,
        )
        db.add(user)
        db.commit()
        return user

    return _make_user


@pytest.fixture
def make_lawyer(db, make_user):
    def _make_lawyer(
        full_name=None,
        areas=("Family Law",),
        account_status=AccountStatus.verified,
        is_deleted=False,
        profile_complete=True,
    ):
        user = make_user(UserRole.lawyer, full_name, account_status, is_deleted)
        profile = LawyerProfile(
            user_id=user.id,
            city="Colombo",
            years_of_experience=8,
            professional_bio="Practising family and civil law.",
            court_jurisdiction="District Court",
            languages_spoken=["English", "Sinhala"],
            is_profile_complete=profile_complete,
        )
        profile.practice_areas = [LawyerPracticeArea(area=area) for area in areas]
        db.add(profile)
        db.commit()
        return user

    return _make_lawyer


@pytest.fixture
def client_user(make_user):
    return make_user(UserRole.client, "Nimali Perera")


@pytest.fixture
def other_client(make_user):
    return make_user(UserRole.client, "Kasun Silva")


@pytest.fixture
def lawyer(make_lawyer):
    return make_lawyer("Anura Fernando")


@pytest.fixture
def second_lawyer(make_lawyer):
    return make_lawyer("Dilani Jayasuriya")


def case_payload(**overrides):
    data = {
        "title": "Custody dispute",
        "description": "Need representation in a child custody matter.",
        "category": "Family Law",
        "budget_range": BudgetRange.range_50k_100k,
        "province": "Western",
        "district": "Colombo",
        "court": "District Court Colombo",
        "preferred_languages": ["English"],
    }
    data.update(overrides)
    return CaseCreate(**data)


def proposal_payload(case_id, **overrides):
    data = {
        "case_id": case_id,
        "fee_structure": FeeStructure(total_proposed_fee=75000, court_fees=5000, expected_date="2026-12-01"),
        "case_assessment": "Strong grounds for joint custody.",
        "services_included": "Drafting, filing and representation",
    }
    data.update(overrides)
    return ProposalCreate(**data)


@pytest.fixture
def case(db, client_user):
    return case_service.create_case(db, client_user.id, case_payload())


@pytest.fixture
def invite(db, case, client_user):
    """Invite the given lawyers to `case`."""
    def _invite(*lawyers):
        return invitation_service.invite_lawyers(db, case.id, [l.id for l in lawyers], client_user.id)

    return _invite


@pytest.fixture
def assigned_case(db, case, client_user, lawyer, invite):
    """Case with `lawyer` invited, proposing and accepted (timeline open)."""
    invite(lawyer)
    proposal = proposal_service.create_proposal(db, lawyer.id, proposal_payload(case.id))
    proposal_service.respond_to_proposal(db, proposal.id, client_user.id, "accept")
    db.refresh(case)
    return case


# ============================================================================
# API
# ============================================================================

@pytest.fixture
def api(session_factory, storage):
    app = create_app(session_factory=session_factory, storage=storage)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def auth_headers():
    def _auth_headers(user, expires_in=timedelta(hours=1)):
        token = jwt.encode(
            {"sub": str(user.id), "exp": datetime.now(timezone.utc) + expires_in},
            settings.JWT_SECRET_KEY,
            algorithm=settings.JWT_ALGORITHM,
        )
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers
