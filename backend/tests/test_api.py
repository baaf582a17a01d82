"""
API tests through the FastAPI app, including the full case lifecycle.

Run with: pytest backend/tests/test_api.py -v
"""
import uuid
from datetime import timedelta

from uplaw.db.models import AccountStatus, Case, CaseTimeline


def pdf(name):
    return ("files", (name, b"%PDF-1.4 test", "application/pdf"))


CASE_BODY = {
    "title": "Custody dispute",
    "description": "Need representation in a child custody matter.",
    "category": "Family Law",
    "budget_range": "50000-100000",
    "province": "Western",
    "district": "Colombo",
    "urgency": "high",
}

PROPOSAL_BODY = {
    "fee_structure": {"total_proposed_fee": 90000, "expected_date": "2026-12-15"},
    "case_assessment": "Strong grounds for joint custody.",
}


# ============================================================================
# Auth and error envelope
# ============================================================================

class TestAuth:

    def test_missing_token(self, api):
        response = api.get("/api/v1/cases")
        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["error"] == {"code": "UNAUTHENTICATED", "statusCode": 401}

    def test_expired_token(self, api, client_user, auth_headers):
        response = api.get("/api/v1/cases", headers=auth_headers(client_user, timedelta(minutes=-5)))
        assert response.status_code == 401
        assert response.json()["message"] == "Token expired"

    def test_suspended_account(self, api, make_user, auth_headers):
        user = make_user(account_status=AccountStatus.suspended)
        assert api.get("/api/v1/cases", headers=auth_headers(user)).status_code == 403

    def test_wrong_role(self, api, lawyer, auth_headers):
        response = api.post("/api/v1/cases", json=CASE_BODY, headers=auth_headers(lawyer))
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "UNAUTHORIZED"

    def test_validation_error_is_bad_request(self, api, client_user, auth_headers):
        body = dict(CASE_BODY, budget_range="a lot")
        response = api.post("/api/v1/cases", json=body, headers=auth_headers(client_user))
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "BAD_REQUEST"

    def test_health(self, api):
        assert api.get("/health").json() == {"status": "healthy"}
        ready = api.get("/api/v1/health/ready")
        assert ready.status_code == 200
        assert ready.json()["checks"]["database"]["status"] == "ok"

    def test_correlation_id_echoed(self, api):
        response = api.get("/health", headers={"X-Correlation-ID": "abc-123"})
        assert response.headers["X-Correlation-ID"] == "abc-123"


# ============================================================================
# Endpoints
# ============================================================================

class TestCaseEndpoints:

    def test_not_found_envelope(self, api, client_user, auth_headers):
        response = api.get("/api/v1/cases/00000000-0000-0000-0000-000000000000", headers=auth_headers(client_user))
        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "message": "Case not found",
            "error": {"code": "NOT_FOUND", "statusCode": 404},
        }

    def test_received_invitations(self, api, client_user, lawyer, auth_headers):
        case_id = api.post("/api/v1/cases", json=CASE_BODY, headers=auth_headers(client_user)).json()["id"]
        api.post(f"/api/v1/cases/{case_id}/invite", json={"lawyer_ids": [str(lawyer.id)]}, headers=auth_headers(client_user))

        received = api.get("/api/v1/cases/received", headers=auth_headers(lawyer)).json()
        assert len(received) == 1
        assert received[0]["case"]["title"] == "Custody dispute"

        response = api.patch(
            f"/api/v1/cases/invitations/{received[0]['id']}/status",
            json={"status": "declined"},
            headers=auth_headers(lawyer),
        )
        assert response.status_code == 200
        assert response.json()["status"] == "declined"

    def test_create_with_voice_note(self, api, storage, client_user, auth_headers):
        form = dict(CASE_BODY, preferred_languages='["English", "Tamil"]')
        response = api.post(
            "/api/v1/cases/with-voice-note",
            data=form,
            files={"voice_note": ("brief.mp3", b"ID3 voice", "audio/mpeg")},
            headers=auth_headers(client_user),
        )
        assert response.status_code == 201
        body = response.json()
        assert body["preferred_languages"] == ["English", "Tamil"]
        assert body["voice_note"]["original_name"] == "brief.mp3"
        assert body["voice_note"]["ref_id"] in storage.objects

    def test_create_with_voice_note_rejects_other_files(self, api, storage, client_user, auth_headers):
        response = api.post(
            "/api/v1/cases/with-voice-note",
            data=CASE_BODY,
            files={"voice_note": ("brief.pdf", b"%PDF", "application/pdf")},
            headers=auth_headers(client_user),
        )
        assert response.status_code == 400
        assert storage.objects == {}

    def test_create_multipart_without_voice_note(self, api, client_user, auth_headers):
        response = api.post("/api/v1/cases/with-voice-note", data=CASE_BODY, headers=auth_headers(client_user))
        assert response.status_code == 201
        assert response.json()["voice_note"] is None

    def test_create_multipart_validation(self, api, client_user, auth_headers):
        body = dict(CASE_BODY, budget_range="a lot")
        response = api.post("/api/v1/cases/with-voice-note", data=body, headers=auth_headers(client_user))
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "BAD_REQUEST"

    def test_proposal_views(self, api, client_user, lawyer, auth_headers):
        case_id = api.post("/api/v1/cases", json=CASE_BODY, headers=auth_headers(client_user)).json()["id"]
        api.post(f"/api/v1/cases/{case_id}/invite", json={"lawyer_ids": [str(lawyer.id)]}, headers=auth_headers(client_user))
        api.post("/api/v1/proposals", json=dict(PROPOSAL_BODY, case_id=case_id), headers=auth_headers(lawyer))

        [received] = api.get("/api/v1/proposals/received", headers=auth_headers(client_user)).json()
        assert received["lawyer"]["full_name"] == "Anura Fernando"
        assert received["case"]["title"] == "Custody dispute"
        assert received["client"] is None

        [sent] = api.get("/api/v1/proposals/sent", headers=auth_headers(lawyer)).json()
        assert sent["client"]["full_name"] == "Nimali Perera"
        assert sent["lawyer"] is None

        detail = api.get(f"/api/v1/proposals/{received['id']}", headers=auth_headers(client_user)).json()
        assert detail["lawyer"]["languages_spoken"] == ["English", "Sinhala"]

    def test_suggested_lawyers(self, api, client_user, lawyer, auth_headers):
        case_id = api.post("/api/v1/cases", json=CASE_BODY, headers=auth_headers(client_user)).json()["id"]
        lawyers = api.get(f"/api/v1/cases/{case_id}/lawyers", headers=auth_headers(client_user)).json()
        assert [l["lawyer_id"] for l in lawyers] == [str(lawyer.id)]

    def test_phase_submit_rejects_court_hearing(self, api, db, assigned_case, lawyer, auth_headers):
        response = api.post(
            f"/api/v1/cases/{assigned_case.id}/phases/court-hearing/submit",
            data={"lawyer_remarks": "x"},
            headers=auth_headers(lawyer),
        )
        assert response.status_code == 400
        assert "subphases endpoint" in response.json()["message"]

    def test_phase_submit_by_client_is_refused(self, api, assigned_case, client_user, auth_headers):
        response = api.post(
            f"/api/v1/cases/{assigned_case.id}/phases/case-intake/submit",
            data={"lawyer_remarks": "x"},
            headers=auth_headers(client_user),
        )
        assert response.status_code == 403

    def test_double_submit_over_http(self, api, storage, assigned_case, lawyer, auth_headers):
        url = f"/api/v1/cases/{assigned_case.id}/phases/case-intake/submit"
        first = api.post(url, data={"lawyer_remarks": "ok"}, files=[pdf("a.pdf")], headers=auth_headers(lawyer))
        assert first.status_code == 200
        kept = set(storage.objects)

        second = api.post(url, data={"lawyer_remarks": "again"}, files=[pdf("b.pdf")], headers=auth_headers(lawyer))
        assert second.status_code == 400
        assert set(storage.objects) == kept


# ============================================================================
# End-to-end
# ============================================================================

class TestLifecycle:

    def test_case_from_posting_to_closure(self, api, db, storage, client_user, lawyer, auth_headers):
        as_client = auth_headers(client_user)
        as_lawyer = auth_headers(lawyer)

        # Client posts a case
        response = api.post("/api/v1/cases", json=CASE_BODY, headers=as_client)
        assert response.status_code == 201
        case = response.json()
        case_id = case["id"]
        assert case["status"] == "pending"

        listed = api.get("/api/v1/cases", headers=as_client).json()
        assert listed[0]["suggested_lawyers_count"] == 1

        # Invite lawyer; re-inviting is skipped
        response = api.post(f"/api/v1/cases/{case_id}/invite", json={"lawyer_ids": [str(lawyer.id)]}, headers=as_client)
        assert response.json()["invited"] == 1
        response = api.post(f"/api/v1/cases/{case_id}/invite", json={"lawyer_ids": [str(lawyer.id)]}, headers=as_client)
        assert response.json() == {"invited": 0, "skipped": 1, "message": "Successfully invited 0 lawyer(s)"}
        assert api.get(f"/api/v1/cases/{case_id}", headers=as_client).json()["invitation_count"] == 1

        # Lawyer opens the case and proposes
        assert api.get(f"/api/v1/cases/{case_id}", headers=as_lawyer).status_code == 200
        response = api.post("/api/v1/proposals", json=dict(PROPOSAL_BODY, case_id=case_id), headers=as_lawyer)
        assert response.status_code == 201
        proposal_id = response.json()["id"]
        assert api.get(f"/api/v1/cases/{case_id}", headers=as_client).json()["proposal_count"] == 1
        received = api.get("/api/v1/cases/received", headers=as_lawyer).json()
        assert received[0]["status"] == "accepted"

        # Client reads and accepts
        assert api.get(f"/api/v1/proposals/{proposal_id}", headers=as_client).json()["status"] == "viewed"
        response = api.patch(f"/api/v1/proposals/{proposal_id}/respond", json={"action": "accept"}, headers=as_client)
        assert response.status_code == 200
        assert response.json()["status"] == "accepted"

        case = api.get(f"/api/v1/cases/{case_id}", headers=as_client).json()
        assert case["status"] == "active"
        assert case["assigned_lawyer_id"] == str(lawyer.id)

        timeline = api.get(f"/api/v1/cases/{case_id}/timeline", headers=as_client).json()
        assert timeline["phases"][0]["status"] == "ongoing"
        assert timeline["progress"] == 0

        # Accepted proposals cannot be withdrawn
        response = api.patch(f"/api/v1/proposals/{proposal_id}/withdraw", headers=as_lawyer)
        assert response.status_code == 400

        # Intake with two documents
        response = api.post(
            f"/api/v1/cases/{case_id}/phases/case-intake/submit",
            data={"lawyer_remarks": "Client interviewed", "judge_court_remarks": ""},
            files=[pdf("retainer.pdf"), pdf("nic.pdf")],
            headers=as_lawyer,
        )
        assert response.status_code == 200
        phases = response.json()["phases"]
        assert [p["status"] for p in phases[:2]] == ["completed", "ongoing"]
        assert len(phases[0]["data"]["documents"]) == 2
        assert len(storage.objects) == 2

        for phase in ("case-filed", "trial-preparation"):
            response = api.post(f"/api/v1/cases/{case_id}/phases/{phase}/submit", data={}, headers=as_lawyer)
            assert response.status_code == 200

        # Court hearing: one hearing, then complete
        response = api.post(
            f"/api/v1/cases/{case_id}/phases/court-hearing/subphases",
            data={"name": "Preliminary hearing", "judge_court_remarks": "Adjourned"},
            files=[pdf("motion.pdf")],
            headers=as_lawyer,
        )
        assert response.status_code == 200
        assert response.json()["total_sub_phases"] == 1
        assert response.json()["sub_phase"]["sequence"] == 1

        response = api.post(f"/api/v1/cases/{case_id}/phases/court-hearing/complete", headers=as_lawyer)
        assert response.status_code == 200
        assert response.json()["phases"][4]["status"] == "ongoing"

        # Outcome closes the case
        response = api.post(
            f"/api/v1/cases/{case_id}/phases/case-outcome/submit",
            data={"outcome": "won", "lawyer_remarks": "Custody granted"},
            headers=as_lawyer,
        )
        assert response.status_code == 200
        assert response.json()["progress"] == 100

        timeline = api.get(f"/api/v1/cases/{case_id}/timeline", headers=as_lawyer).json()
        assert timeline["case"]["status"] == "completed"
        assert timeline["phases"][4]["data"]["outcome"] == "won"
        assert [sp["name"] for sp in timeline["phases"][3]["sub_phases"]] == ["Preliminary hearing"]

        db.expire_all()
        stored_case = db.query(Case).filter(Case.id == uuid.UUID(case_id)).one()
        assert stored_case.status.value == "completed"
        assert db.query(CaseTimeline).count() == 1
