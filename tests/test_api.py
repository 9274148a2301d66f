"""
API Tests - HTTP routes and WebSocket streams against the in-memory store.
"""

import pytest
from starlette.websockets import WebSocketDisconnect

from internlink.core.auth import create_access_token
from tests.conftest import COMPANY, VALID_NOTES

PDF_BYTES = b"%PDF-1.4 resume body"


@pytest.fixture
def apply(client, auth_headers, student):
    def _apply(posting_id="p-1", cover_letter="Interested in the backend role", resume=None):
        files = {"resume": resume} if resume else None
        return client.post(
            "/api/applications",
            data={"posting_id": posting_id, "cover_letter": cover_letter},
            files=files,
            headers=auth_headers(student),
        )
    return _apply


def ws_url(path, actor, **params):
    query = "&".join([f"token={create_access_token(actor)}"] + [f"{k}={v}" for k, v in params.items()])
    return f"/api/ws{path}?{query}"


# ============================================================
# HTTP
# ============================================================

def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["store_backend"] == "memory"


def test_openapi_documents_error_bodies_and_retry(client):
    schema = client.get("/openapi.json").json()

    review = schema["paths"]["/api/applications/{application_id}/review"]["put"]["responses"]
    assert review["409"]["content"]["application/json"]["schema"]["$ref"].endswith("/ErrorResponse")
    assert "403" in schema["paths"]["/api/postings/{posting_id}/applications"]["get"]["responses"]
    assert "re-checked once" in schema["info"]["description"]


def test_submit_and_read_back(apply, client, auth_headers, company):
    response = apply()
    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "pending"
    assert body["status_label"] == "Pending"
    assert body["status_description"] == "Pending - Awaiting review"
    assert body["has_resume"] is False
    assert "resume_blob" not in body

    detail = client.get(f"/api/applications/{body['application_id']}", headers=auth_headers(company))
    assert detail.status_code == 200
    assert detail.json()["posting"]["title"] == "Backend Intern"
    assert detail.json()["student_profile"]["name"] == "Maria Santos"


def test_resume_upload_and_download(apply, client, auth_headers, student):
    created = apply(resume=("my cv.pdf", PDF_BYTES, "application/pdf")).json()
    assert created["has_resume"] is True
    assert created["resume_size"] == len(PDF_BYTES)

    response = client.get(f"/api/applications/{created['application_id']}/resume",
                          headers=auth_headers(student))
    assert response.status_code == 200
    assert response.content == PDF_BYTES
    assert response.headers["content-type"] == "application/pdf"
    assert "my%20cv.pdf" in response.headers["content-disposition"]


def test_download_without_resume_is_404(apply, client, auth_headers, student):
    created = apply().json()
    response = client.get(f"/api/applications/{created['application_id']}/resume",
                          headers=auth_headers(student))
    assert response.status_code == 404
    assert response.json()["error"] == "NoResumeError"


def test_oversized_resume_is_rejected(apply):
    response = apply(resume=("big.pdf", b"x" * 500_001, "application/pdf"))
    assert response.status_code == 413


def test_closed_posting_is_rejected(apply):
    response = apply(posting_id="p-closed")
    assert response.status_code == 400
    assert response.json()["error"] == "PostingInactiveError"


def test_review_flow_and_errors(apply, client, auth_headers, company, other_company):
    app_id = apply().json()["application_id"]
    url = f"/api/applications/{app_id}/review"

    short = client.put(url, json={"status": "shortlisted", "notes": "ok"}, headers=auth_headers(company))
    assert short.status_code == 400
    assert short.json()["error"] == "ValidationError"

    foreign = client.put(url, json={"status": "shortlisted", "notes": VALID_NOTES},
                         headers=auth_headers(other_company))
    assert foreign.status_code == 403

    ok = client.put(url, json={"status": "shortlisted", "notes": VALID_NOTES}, headers=auth_headers(company))
    assert ok.status_code == 200
    assert ok.json()["status"] == "shortlisted"
    assert ok.json()["company_notes"] == VALID_NOTES


def test_stale_version_surfaces_conflict_only_after_retry_fails(apply, client, auth_headers, company):
    created = apply().json()
    app_id = created["application_id"]
    headers = auth_headers(company)

    client.put(f"/api/applications/{app_id}/review",
               json={"status": "shortlisted", "notes": VALID_NOTES}, headers=headers)
    stale = client.put(f"/api/applications/{app_id}/review",
                       json={"status": "shortlisted", "notes": VALID_NOTES,
                             "expected_version": created["last_updated"]},
                       headers=headers)

    # Re-validated against fresh state: already shortlisted
    assert stale.status_code == 400


def test_override_back_to_pending(apply, client, auth_headers, company):
    app_id = apply().json()["application_id"]
    headers = auth_headers(company)
    client.put(f"/api/applications/{app_id}/status", json={"status": "rejected"}, headers=headers)

    blocked = client.put(f"/api/applications/{app_id}/status", json={"status": "pending"}, headers=headers)
    assert blocked.status_code == 400

    reset = client.post(f"/api/applications/{app_id}/override",
                        json={"status": "pending", "reason": "Rejected the wrong applicant"}, headers=headers)
    assert reset.status_code == 200
    history = client.get(f"/api/applications/{app_id}", headers=headers).json()["status_history"]
    assert history[-1]["override"] is True


def test_withdraw(apply, client, auth_headers, student, other_student):
    app_id = apply().json()["application_id"]

    assert client.delete(f"/api/applications/{app_id}", headers=auth_headers(other_student)).status_code == 403
    assert client.delete(f"/api/applications/{app_id}", headers=auth_headers(student)).status_code == 200

    missing = client.get(f"/api/applications/{app_id}", headers=auth_headers(student))
    assert missing.status_code == 404
    assert missing.json()["error"] == "NotFoundError"


def test_lists_and_dashboards(apply, client, auth_headers, student, company):
    app_id = apply().json()["application_id"]
    apply(posting_id="p-2")
    client.put(f"/api/applications/{app_id}/status", json={"status": "accepted"}, headers=auth_headers(company))

    listed = client.get("/api/students/s-1/applications?status=accepted", headers=auth_headers(student)).json()
    assert [a["application_id"] for a in listed["applications"]] == [app_id]
    assert listed["tally"]["total"] == 2
    assert listed["tally"]["counts"]["pending"] == 1

    posting = client.get("/api/postings/p-1/applications", headers=auth_headers(company)).json()
    assert posting["tally"]["total"] == 1

    dashboard = client.get(f"/api/companies/{COMPANY}/dashboard", headers=auth_headers(company)).json()
    assert dashboard["total"] == 2
    assert dashboard["accepted"] == 1
    assert dashboard["pending_review"] == 1


def test_list_access_and_filter_errors(client, auth_headers, student, other_student, company):
    assert client.get("/api/students/s-1/applications", headers=auth_headers(other_student)).status_code == 403
    assert client.get("/api/postings/p-1/applications", headers=auth_headers(student)).status_code == 403
    bad = client.get("/api/students/s-1/applications?status=interviewing", headers=auth_headers(student))
    assert bad.status_code == 400


def test_requests_without_valid_token_are_refused(client):
    assert client.get("/api/students/s-1/applications").status_code in (401, 403)
    bad = client.get("/api/students/s-1/applications", headers={"Authorization": "Bearer nope"})
    assert bad.status_code == 401


# ============================================================
# WEBSOCKETS
# ============================================================

def test_application_stream_pushes_review_then_withdrawal(apply, client, auth_headers, student, company):
    app_id = apply().json()["application_id"]

    with client.websocket_connect(ws_url(f"/applications/{app_id}", student)) as ws:
        first = ws.receive_json()
        assert first["deleted"] is False
        assert first["application"]["status"] == "pending"

        client.put(f"/api/applications/{app_id}/review",
                   json={"status": "shortlisted", "notes": VALID_NOTES}, headers=auth_headers(company))
        pushed = ws.receive_json()
        assert pushed["application"]["status"] == "shortlisted"
        assert pushed["application"]["company_notes"] == VALID_NOTES

        client.delete(f"/api/applications/{app_id}", headers=auth_headers(student))
        assert ws.receive_json() == {"deleted": True, "application": None}


def test_posting_stream_keeps_tally_unfiltered(apply, client, auth_headers, company):
    apply()

    with client.websocket_connect(ws_url("/postings/p-1/applications", company, status="accepted")) as ws:
        first = ws.receive_json()
        assert first["applications"] == []
        assert first["tally"]["total"] == 1
        assert first["status_filter"] == "accepted"


def test_stream_refuses_foreign_scope(client, student):
    with client.websocket_connect(ws_url("/postings/p-1/applications", student)) as ws:
        message = ws.receive_json()
        assert message["error"] == "ForbiddenError"
        assert set(message) == {"detail", "error"}
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_json()
    assert exc_info.value.code == 4403


def test_stream_rejects_bad_token(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/api/ws/students/s-1/applications?token=nope") as ws:
            ws.receive_json()


def test_student_stream_pushes_filtered_view_on_review(apply, client, auth_headers, student, company):
    app_id = apply().json()["application_id"]

    with client.websocket_connect(ws_url("/students/s-1/applications", student, status="shortlisted")) as ws:
        first = ws.receive_json()
        assert first["applications"] == []
        assert first["tally"]["counts"]["pending"] == 1

        client.put(f"/api/applications/{app_id}/status",
                   json={"status": "shortlisted"}, headers=auth_headers(company))
        pushed = ws.receive_json()
        assert [a["application_id"] for a in pushed["applications"]] == [app_id]
        assert pushed["tally"]["counts"]["pending"] == 0
        assert pushed["tally"]["counts"]["shortlisted"] == 1


def test_stream_with_unknown_status_filter_is_closed(client, student):
    with client.websocket_connect(ws_url("/students/s-1/applications", student, status="interviewing")) as ws:
        assert ws.receive_json()["error"] == "ValidationError"
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_json()
    assert exc_info.value.code == 4400
