"""
Tests: use case REST endpoints — authentication, guard denials with
reasons, wire decoding of step/status/type strings, If-Match handling and
the completion response carrying the side-effect report.
"""

from unittest.mock import patch

import pytest

from core_service.integrations import file_service as file_service_module
from core_service.models.workflow import Status
from core_service.services import notification as notification_module

BASE = "/api/v1/use-cases"


@pytest.fixture()
def quiet_side_effects():
    with patch.object(
        notification_module, "notify_step_handoff", return_value=["r@test"],
    ) as notify, patch.object(
        file_service_module.file_service_gateway, "lock_file", return_value=None,
    ) as lock:
        yield notify, lock


def _create(client, headers, plant_id="P01", **extra):
    payload = {"name": "Robot cell", "plant_id": plant_id, "building": "7", **extra}
    return client.post(BASE, json=payload, headers=headers)


# ── Authentication ────────────────────────────────────────────────────────────


class TestAuthentication:
    def test_missing_credentials_return_401(self, client):
        res = client.get(BASE)
        assert res.status_code == 401

    def test_invalid_token_returns_401(self, client):
        res = client.get(BASE, headers={"Authorization": "Bearer not-a-jwt"})
        assert res.status_code == 401

    def test_wrong_internal_token_returns_401(self, client):
        res = client.get(BASE, headers={"X-Internal-Token": "guess"})
        assert res.status_code == 401

    def test_internal_token_is_accepted(self, client, internal_headers):
        assert client.get(BASE, headers=internal_headers).status_code == 200

    def test_health_is_public(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"
        assert res.headers["X-Content-Type-Options"] == "nosniff"
        assert res.headers["X-Request-ID"]


# ── CRUD ──────────────────────────────────────────────────────────────────────


class TestCrud:
    def test_create_and_get(self, client, plant, owner_headers):
        res = _create(client, owner_headers, line="L1")
        assert res.status_code == 201
        body = res.get_json()
        assert body["name"] == "P01-H7-Robot cell"
        assert body["created_by"] == "user-owner"
        assert body["status"] == "in-evaluation"
        assert body["current_step"] == "initial-request"

        res = client.get(f"{BASE}/{body['id']}", headers=owner_headers)
        assert res.status_code == 200
        assert res.get_json()["line"] == "L1"

    def test_create_validation_error(self, client, plant, owner_headers):
        res = client.post(BASE, json={"plant_id": "P01"}, headers=owner_headers)
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_create_unknown_plant(self, client, plant, owner_headers):
        assert _create(client, owner_headers, plant_id="P42").status_code == 404

    def test_get_unknown_returns_404(self, client, owner_headers):
        res = client.get(f"{BASE}/does-not-exist", headers=owner_headers)
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_list_with_paging(self, client, make_use_case, owner_headers):
        for _ in range(3):
            make_use_case()
        res = client.get(f"{BASE}?page=1&limit=2", headers=owner_headers)
        assert res.status_code == 200
        body = res.get_json()
        assert len(body["items"]) == 2
        assert body["paging"] == {"count": 2, "page": 1, "page_count": 2, "total": 3}
        assert "steps" not in body["items"][0]

    def test_update_by_owner(self, client, make_use_case, owner_headers):
        uc = make_use_case()
        res = client.put(f"{BASE}/{uc.id}", json={"image": "img-1"}, headers=owner_headers)
        assert res.status_code == 200
        assert res.get_json()["image"] == "img-1"

    @pytest.mark.parametrize("payload", [
        {"line": {"x": 1}},
        {"image": ["a"]},
        {"position": 3},
        {"building": {"x": 1}},
        {"plant_id": {"x": 1}},
        {"plant_id": ""},
    ])
    def test_update_with_malformed_field_is_400(self, client, make_use_case, owner_headers, payload):
        uc = make_use_case()
        res = client.put(f"{BASE}/{uc.id}", json=payload, headers=owner_headers)
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

        body = client.get(f"{BASE}/{uc.id}", headers=owner_headers).get_json()
        assert body["version"] == 1
        assert body["line"] is None and body["image"] is None
        assert body["plant_id"] == "P01" and body["building"] == "7"

    def test_create_with_malformed_optional_field_is_400(self, client, plant, owner_headers):
        res = _create(client, owner_headers, image=["a"])
        assert res.status_code == 400
        assert res.get_json()["details"] == {"image": "string or null required"}
        assert client.get(BASE, headers=owner_headers).get_json()["paging"]["total"] == 0

    def test_update_by_stranger_is_forbidden(self, client, make_use_case, other_headers):
        uc = make_use_case()
        res = client.put(f"{BASE}/{uc.id}", json={"image": "x"}, headers=other_headers)
        assert res.status_code == 403
        body = res.get_json()
        assert body["code"] == "ERR_FORBIDDEN"
        assert body["details"]["reason"] == "not-owner"

    def test_terminal_use_case_denied_on_status_for_anyone(
        self, client, make_use_case, other_headers,
    ):
        uc = make_use_case(completed=5, status=Status.IN_IMPLEMENTATION.value)
        res = client.put(f"{BASE}/{uc.id}", json={"image": "x"}, headers=other_headers)
        assert res.status_code == 403
        assert res.get_json()["details"]["reason"] == "wrong-status-for-edit"

    def test_delete_by_owner_before_completion(self, client, make_use_case, owner_headers):
        uc = make_use_case(submitted=1)
        assert client.delete(f"{BASE}/{uc.id}", headers=owner_headers).status_code == 204
        assert client.get(f"{BASE}/{uc.id}", headers=owner_headers).status_code == 404

    def test_delete_by_owner_after_completion_forbidden(self, client, make_use_case, owner_headers):
        uc = make_use_case(completed=1)
        res = client.delete(f"{BASE}/{uc.id}", headers=owner_headers)
        assert res.status_code == 403
        assert res.get_json()["details"]["reason"] == "pending-steps-block-delete"

    def test_delete_by_review_team_any_time(self, client, make_use_case, review_headers):
        uc = make_use_case(completed=3)
        assert client.delete(f"{BASE}/{uc.id}", headers=review_headers).status_code == 204


# ── If-Match ──────────────────────────────────────────────────────────────────


class TestIfMatch:
    def test_matching_version_is_accepted(self, client, make_use_case, owner_headers):
        uc = make_use_case()
        res = client.put(
            f"{BASE}/{uc.id}", json={"line": "L2"},
            headers={**owner_headers, "If-Match": '"1"'},
        )
        assert res.status_code == 200
        assert res.get_json()["version"] == 2

    def test_stale_version_returns_409(self, client, make_use_case, owner_headers):
        uc = make_use_case()
        res = client.put(
            f"{BASE}/{uc.id}", json={"line": "L2"},
            headers={**owner_headers, "If-Match": "7"},
        )
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_VERSION"

    def test_malformed_version_returns_400(self, client, make_use_case, owner_headers):
        uc = make_use_case()
        res = client.put(
            f"{BASE}/{uc.id}", json={"line": "L2"},
            headers={**owner_headers, "If-Match": "abc"},
        )
        assert res.status_code == 400


# ── Steps ─────────────────────────────────────────────────────────────────────


class TestSteps:
    def test_unknown_step_returns_400(self, client, make_use_case, owner_headers):
        uc = make_use_case()
        res = client.put(f"{BASE}/{uc.id}/step/InitialRequest", json={}, headers=owner_headers)
        assert res.status_code == 400

    def test_submit_step(self, client, make_use_case, owner_headers):
        uc = make_use_case()
        res = client.put(
            f"{BASE}/{uc.id}/step/initial-request", json={"budget": 100}, headers=owner_headers,
        )
        assert res.status_code == 200
        steps = res.get_json()["steps"]
        assert steps[0]["type"] == "initial-request"
        assert steps[0]["form"] == {"budget": 100}
        assert steps[0]["completed_at"] is None

    def test_requestor_cannot_submit_review_step(self, client, make_use_case, owner_headers):
        uc = make_use_case()
        res = client.put(
            f"{BASE}/{uc.id}/step/initial-feasibility-check", json={}, headers=owner_headers,
        )
        assert res.status_code == 403
        assert res.get_json()["details"]["reason"] == "wrong-role-for-step"

    def test_complete_returns_side_effect_report(
        self, client, make_use_case, owner_headers, quiet_side_effects,
    ):
        uc = make_use_case(submitted=1)
        res = client.post(f"{BASE}/{uc.id}/step/initial-request/complete", headers=owner_headers)
        assert res.status_code == 200
        body = res.get_json()
        assert body["use_case"]["status"] == "under-validation"
        assert body["use_case"]["current_step"] == "initial-feasibility-check"
        assert body["side_effects"]["notification"] == {"ok": True, "recipients": ["r@test"]}

        notify, _ = quiet_side_effects
        assert notify.call_args.kwargs["auth_headers"]["Authorization"] == owner_headers["Authorization"]

    def test_complete_not_submitted_returns_409(
        self, client, make_use_case, owner_headers, quiet_side_effects,
    ):
        uc = make_use_case()
        res = client.post(f"{BASE}/{uc.id}/step/initial-request/complete", headers=owner_headers)
        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "ERR_WORKFLOW_VIOLATION"
        assert body["details"]["violation"] == "not-submitted"

    def test_out_of_order_reports_expected_step(
        self, client, make_use_case, review_headers, quiet_side_effects,
    ):
        uc = make_use_case(submitted=2)
        res = client.post(
            f"{BASE}/{uc.id}/step/initial-feasibility-check/complete", headers=review_headers,
        )
        assert res.status_code == 409
        details = res.get_json()["details"]
        assert details["violation"] == "out-of-order"
        assert details["expected"] == "initial-request"

    def test_completed_step_cannot_be_resubmitted(self, client, make_use_case, owner_headers):
        uc = make_use_case(completed=2)
        res = client.put(f"{BASE}/{uc.id}/step/initial-request", json={}, headers=owner_headers)
        assert res.status_code == 403
        assert res.get_json()["details"]["reason"] == "step-already-completed"


# ── Status ────────────────────────────────────────────────────────────────────


class TestStatus:
    def test_unknown_status_returns_400(self, client, make_use_case, review_headers):
        uc = make_use_case()
        res = client.post(f"{BASE}/{uc.id}/status/archived", headers=review_headers)
        assert res.status_code == 400

    def test_owner_declines_in_implementation(self, client, make_use_case, owner_headers):
        uc = make_use_case(completed=5, status="in-implementation")
        res = client.post(f"{BASE}/{uc.id}/status/declined", headers=owner_headers)
        assert res.status_code == 200
        assert res.get_json()["status"] == "declined"

    def test_owner_other_transition_forbidden(self, client, make_use_case, owner_headers):
        uc = make_use_case()
        res = client.post(f"{BASE}/{uc.id}/status/declined", headers=owner_headers)
        assert res.status_code == 403
        assert res.get_json()["details"]["reason"] == "invalid-status-transition"

    def test_review_team_sets_status(self, client, make_use_case, review_headers):
        uc = make_use_case()
        res = client.post(f"{BASE}/{uc.id}/status/under-validation", headers=review_headers)
        assert res.status_code == 200
        assert res.get_json()["status"] == "under-validation"

    def test_live_is_not_writable(self, client, make_use_case, internal_headers):
        uc = make_use_case()
        res = client.post(f"{BASE}/{uc.id}/status/live", headers=internal_headers)
        assert res.status_code == 400


# ── Attachments ───────────────────────────────────────────────────────────────


class TestAttachments:
    def test_add_attachment_for_current_step(self, client, make_use_case, owner_headers):
        uc = make_use_case()
        res = client.post(
            f"{BASE}/{uc.id}/attachments",
            json={"type": "initial-request-file", "ref_id": "file-1", "metadata": {"size": 3}},
            headers=owner_headers,
        )
        assert res.status_code == 201
        assert res.get_json()["type"] == "initial-request-file"

        res = client.get(f"{BASE}/{uc.id}/attachments", headers=owner_headers)
        assert res.status_code == 200
        assert [a["ref_id"] for a in res.get_json()["items"]] == ["file-1"]

    def test_attachment_of_other_step_is_locked(self, client, make_use_case, owner_headers):
        uc = make_use_case(completed=1)
        res = client.post(
            f"{BASE}/{uc.id}/attachments",
            json={"type": "initial-request-file", "ref_id": "late"},
            headers=owner_headers,
        )
        assert res.status_code == 403
        assert res.get_json()["details"]["reason"] == "attachment-locked"

    def test_unknown_attachment_type_returns_400(self, client, make_use_case, owner_headers):
        uc = make_use_case()
        res = client.post(
            f"{BASE}/{uc.id}/attachments", json={"type": "selfie", "ref_id": "x"},
            headers=owner_headers,
        )
        assert res.status_code == 400

    def test_listing_allowed_on_terminal_use_case(self, client, make_use_case, other_headers):
        uc = make_use_case(completed=5, status="declined")
        res = client.get(f"{BASE}/{uc.id}/attachments", headers=other_headers)
        assert res.status_code == 200
