"""
HTTP API tests — blueprints, identity headers, error mapping.

Uses the Flask test client; caller identity is sent as the upstream auth
proxy would (X-User-Oid / X-User-Name).
"""

from datetime import timedelta

from governance_engine.models import db
from governance_engine.models.governance import GovernanceReview
from governance_engine.utils.helpers import utcnow

ADMIN_HEADERS = {"X-User-Oid": "admin-oid", "X-User-Name": "Admin"}


# ── Helpers ──────────────────────────────────────────────────────────────


def _as(oid):
    return {"X-User-Oid": oid, "X-User-Name": f"User {oid}"}


def _post(client, url, json=None, headers=ADMIN_HEADERS):
    return client.post(url, json=json or {}, headers=headers)


def _start(client, submission_id):
    res = _post(client, f"/api/v1/submissions/{submission_id}/governance/start")
    assert res.status_code == 201, res.get_json()
    return res.get_json()["review"]["id"]


def _vote(client, review_id, oid, scores=None, **extra):
    body = {"scores": scores or {"fit": 70, "value": 60, "risk": 40}, **extra}
    return _post(client, f"/api/v1/governance/reviews/{review_id}/votes", body, headers=_as(oid))


# ═════════════════════════════════════════════════════════════════════════════
# Health & plumbing
# ═════════════════════════════════════════════════════════════════════════════


def test_health(client):
    res = client.get("/api/v1/health")
    assert res.status_code == 200
    assert res.get_json()["status"] == "ok"


def test_health_live_checks_database(client):
    res = client.get("/api/v1/health/live")
    assert res.status_code == 200
    assert res.get_json()["checks"]["database"]["status"] == "ok"


def test_response_headers(client):
    res = client.get("/api/v1/health")
    assert res.headers.get("X-Request-ID")
    assert res.headers.get("X-Content-Type-Options") == "nosniff"


def test_unknown_route_is_json_404(client):
    res = client.get("/api/v1/nope")
    assert res.status_code == 404
    assert res.get_json()["code"] == "ERR_NOT_FOUND"


def test_non_json_body_rejected(client):
    res = client.post(
        "/api/v1/governance/boards", data="name=x",
        content_type="text/plain", headers=ADMIN_HEADERS,
    )
    assert res.status_code == 415


# ═════════════════════════════════════════════════════════════════════════════
# Administration
# ═════════════════════════════════════════════════════════════════════════════


def test_writes_require_identity(client):
    res = client.post("/api/v1/governance/boards", json={"name": "Board"})
    assert res.status_code == 401
    assert res.get_json()["code"] == "ERR_UNAUTHORIZED"


def test_settings_round_trip(client):
    assert client.get("/api/v1/governance/settings").get_json()["governance_enabled"] is False
    res = client.put(
        "/api/v1/governance/settings",
        json={"governance_enabled": True, "quorum_percent": 70},
        headers=ADMIN_HEADERS,
    )
    assert res.status_code == 200
    assert res.get_json()["quorum_percent"] == 70


def test_settings_validation_is_400(client):
    res = client.put("/api/v1/governance/settings", json={"quorum_percent": 0}, headers=ADMIN_HEADERS)
    assert res.status_code == 400
    assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"


def test_board_crud(client):
    res = _post(client, "/api/v1/governance/boards", {"name": "Security Board"})
    assert res.status_code == 201
    bid = res.get_json()["id"]

    assert _post(client, "/api/v1/governance/boards", {"name": "security board"}).status_code == 409

    res = client.put(f"/api/v1/governance/boards/{bid}", json={"name": "SecBoard"}, headers=ADMIN_HEADERS)
    assert res.get_json()["name"] == "SecBoard"

    res = _post(client, f"/api/v1/governance/boards/{bid}/members", {"user_oid": "m1", "role": "chair"})
    assert res.status_code == 200
    members = client.get(f"/api/v1/governance/boards/{bid}/members").get_json()
    assert members["total"] == 1

    assert client.delete(f"/api/v1/governance/boards/{bid}", headers=ADMIN_HEADERS).status_code == 200
    assert client.get(f"/api/v1/governance/boards/{bid}").status_code == 404


def test_criteria_version_endpoints(client, board):
    base = f"/api/v1/governance/boards/{board['id']}/criteria/versions"
    res = _post(client, base, {"criteria": [{"id": "a", "name": "A", "weight": 1}]})
    assert res.status_code == 201
    vid = res.get_json()["id"]

    res = client.put(f"{base}/{vid}", json={"criteria": [{"id": "b", "name": "B", "weight": 2}]},
                     headers=ADMIN_HEADERS)
    assert res.status_code == 200

    res = _post(client, f"{base}/{vid}/publish")
    assert res.get_json()["status"] == "published"

    res = client.put(f"{base}/{vid}", json={"criteria": [{"name": "C", "weight": 1}]}, headers=ADMIN_HEADERS)
    assert res.status_code == 409
    assert res.get_json()["details"]["current_status"] == "published"

    versions = client.get(base).get_json()["items"]
    assert [v["status"] for v in versions] == ["published", "retired"]


# ═════════════════════════════════════════════════════════════════════════════
# Review rounds
# ═════════════════════════════════════════════════════════════════════════════


def test_full_review_over_http(client, submission):
    rid = _start(client, submission["id"])

    res = _vote(client, rid, "u1")
    assert res.status_code == 201
    assert _vote(client, rid, "u1", comment="revised").status_code == 200

    res = _post(client, f"/api/v1/governance/reviews/{rid}/decide", {"decision": "approved-now"})
    assert res.status_code == 422
    body = res.get_json()
    assert body["code"] == "GOVERNANCE_QUORUM_NOT_MET"
    assert body["details"]["quorum"]["missing"] == 1

    assert _vote(client, rid, "u2").status_code == 201
    res = _post(client, f"/api/v1/governance/reviews/{rid}/decide",
                {"decision": "approved-now", "reason": "Go"}, headers=_as("u1"))
    assert res.status_code == 200
    assert res.get_json()["review"]["decision"] == "approved-now"

    assert _vote(client, rid, "u3").status_code == 409

    status = client.get(f"/api/v1/submissions/{submission['id']}/governance").get_json()
    assert status["submission"]["governance_status"] == "decided"
    assert status["current"]["review"]["id"] == rid

    events = client.get("/api/v1/governance/events?since_id=0").get_json()
    assert [e["action"] for e in events["items"]] == [
        "governance.review_opened", "governance.review_decided",
    ]
    assert events["next_since_id"] == events["items"][-1]["id"]


def test_second_start_is_409(client, submission):
    _start(client, submission["id"])
    res = _post(client, f"/api/v1/submissions/{submission['id']}/governance/start")
    assert res.status_code == 409


def test_vote_errors(client, submission):
    rid = _start(client, submission["id"])
    assert _vote(client, rid, "outsider").status_code == 403
    assert _vote(client, rid, "u1", scores={"fit": -1}).status_code == 400
    assert _vote(client, 999, "u1").status_code == 404
    assert client.post(f"/api/v1/governance/reviews/{rid}/votes", json={}).status_code == 401


def test_late_vote_is_410(client, submission):
    rid = _start(client, submission["id"])
    review = db.session.get(GovernanceReview, rid)
    review.vote_deadline_at = utcnow() - timedelta(minutes=5)
    db.session.commit()

    res = _vote(client, rid, "u1")
    assert res.status_code == 410
    assert res.get_json()["code"] == "ERR_VOTE_EXPIRED"

    res = _vote(client, rid, "u1", allow_late=True)
    assert res.status_code == 201
    assert res.get_json()["late"] is True


def test_decide_requires_decision(client, submission):
    rid = _start(client, submission["id"])
    res = _post(client, f"/api/v1/governance/reviews/{rid}/decide", {})
    assert res.status_code == 400


def test_cancel_and_restart(client, submission):
    rid = _start(client, submission["id"])
    res = _post(client, f"/api/v1/governance/reviews/{rid}/cancel", {"reason": "Re-scope"})
    assert res.status_code == 200
    assert res.get_json()["review"]["status"] == "cancelled"
    new_rid = _start(client, submission["id"])
    assert client.get(f"/api/v1/governance/reviews/{new_rid}").get_json()["review"]["review_round"] == 2


def test_submission_endpoints(client, enabled_settings, board):
    res = _post(client, "/api/v1/submissions",
                {"title": "ERP upgrade", "governance_mode": "required", "board_id": board["id"]})
    assert res.status_code == 201
    sid = res.get_json()["id"]
    assert res.get_json()["submitter_oid"] == "admin-oid"

    res = _post(client, f"/api/v1/submissions/{sid}/governance/skip", {"reason": "Pre-approved"})
    assert res.get_json()["governance_status"] == "skipped"
    res = _post(client, f"/api/v1/submissions/{sid}/governance/apply", {})
    assert res.get_json()["governance_status"] == "not-started"

    queue = client.get(f"/api/v1/governance/queue?board_id={board['id']}").get_json()
    assert [s["id"] for s in queue["items"]] == [sid]
    assert client.get("/api/v1/governance/queue?page=0").status_code == 400
    assert client.get("/api/v1/submissions/4040").status_code == 404
