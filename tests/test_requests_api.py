def _request(client, headers, resource_id="res_prod_logs", justification="investigate checkout incident", hours=4):
    body = {"resourceId": resource_id, "justification": justification}
    if hours is not None:
        body["durationHours"] = hours
    return client.post("/api/requests/", json=body, headers=headers)


def test_create_request_is_pending(client, make_user):
    dev = make_user("dev@example.com")
    resp = _request(client, dev["headers"])
    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["status"] == "pending"
    assert body["resourceType"] == "logging_query"
    assert body["userId"] == dev["id"]
    assert body["createdAt"] == "2026-10-19T09:00:00Z"
    assert body["durationHours"] == 4
    assert body["expiresAt"] is None
    assert body["active"] is False


def test_create_request_rejections(client, make_user):
    tester = make_user("qa@example.com", role="qa")

    resp = _request(client, tester["headers"], resource_id="res_checkout_flag")
    assert resp.status_code == 403
    assert resp.json()["error"] == "FORBIDDEN"

    resp = _request(client, tester["headers"], resource_id="res_does_not_exist")
    assert resp.status_code == 404
    assert resp.json()["error"] == "RESOURCE_NOT_FOUND"

    assert _request(client, tester["headers"], justification="pls").status_code == 422
    assert _request(client, tester["headers"], hours=0).status_code == 422


def test_resources_visible_per_role(client, admin, make_user):
    dev = make_user("dev@example.com")
    tester = make_user("qa@example.com", role="qa")

    dev_ids = {r["id"] for r in client.get("/api/resources/", headers=dev["headers"]).json()}
    qa_ids = {r["id"] for r in client.get("/api/resources/", headers=tester["headers"]).json()}
    admin_ids = {r["id"] for r in client.get("/api/resources/", headers=admin["headers"]).json()}

    assert "res_checkout_flag" in dev_ids
    assert "res_checkout_flag" not in qa_ids
    assert "res_prod_logs" in qa_ids
    assert qa_ids < dev_ids <= admin_ids
    assert "res_staging_lock" in admin_ids


def test_branch_refs_per_project(client, make_user):
    dev = make_user("dev@example.com")

    resp = client.get("/api/resources/branches", params={"projectKey": "Web-App"}, headers=dev["headers"])
    assert resp.status_code == 200
    assert "feature/checkout-refactor" in resp.json()

    fallback = client.get("/api/resources/branches", headers=dev["headers"]).json()
    assert fallback[:2] == ["main", "develop"]
    assert "hotfix/login" in fallback
    assert client.get("/api/resources/branches").status_code == 401


def test_admin_approves_and_sets_expiry(client, clock, admin, make_user):
    dev = make_user("dev@example.com")
    request = _request(client, dev["headers"]).json()

    clock.advance(minutes=30)
    url = f"/api/requests/{request['id']}/decision"

    resp = client.post(url, json={"approve": True}, headers=dev["headers"])
    assert resp.status_code == 403
    assert resp.json()["error"] == "FORBIDDEN"

    resp = client.post(url, json={"approve": True, "decisionNote": "ok for today"}, headers=admin["headers"])
    assert resp.status_code == 200
    decided = resp.json()
    assert decided["status"] == "approved"
    assert decided["approverId"] == admin["id"]
    assert decided["approverName"] == "Administrator"
    assert decided["approvedAt"] == "2026-10-19T09:30:00Z"
    assert decided["expiresAt"] == "2026-10-19T13:00:00Z"
    assert decided["decisionNote"] == "ok for today"
    assert decided["active"] is True

    resp = client.post(url, json={"approve": False}, headers=admin["headers"])
    assert resp.status_code == 409
    assert resp.json()["error"] == "REQUEST_NOT_PENDING"

    clock.advance(hours=4)
    [mine] = client.get("/api/requests/", headers=dev["headers"]).json()
    assert mine["status"] == "approved"
    assert mine["active"] is False


def test_deny_and_unknown_request(client, admin, make_user):
    dev = make_user("dev@example.com")
    request = _request(client, dev["headers"], hours=None).json()

    resp = client.post(f"/api/requests/{request['id']}/decision", json={"approve": False}, headers=admin["headers"])
    assert resp.json()["status"] == "denied"
    assert resp.json()["expiresAt"] is None
    assert resp.json()["active"] is False

    resp = client.post("/api/requests/missing/decision", json={"approve": True}, headers=admin["headers"])
    assert resp.status_code == 404
    assert resp.json()["error"] == "REQUEST_NOT_FOUND"


def test_request_filters(client, clock, admin, make_user):
    dev = make_user("dev@example.com")
    other = make_user("other@example.com")
    logs = _request(client, dev["headers"], justification="investigate checkout incident").json()
    clock.advance(hours=2)
    replica = _request(client, dev["headers"], resource_id="res_orders_replica", justification="quarterly report").json()
    _request(client, other["headers"], justification="someone else entirely")
    client.post(f"/api/requests/{logs['id']}/decision", json={"approve": True}, headers=admin["headers"])

    def ids(**params):
        resp = client.get("/api/requests/", params=params, headers=dev["headers"])
        assert resp.status_code == 200, resp.text
        return [r["id"] for r in resp.json()]

    assert ids() == [replica["id"], logs["id"]]
    assert ids(statuses=["approved"]) == [logs["id"]]
    assert ids(statuses=["approved", "pending"]) == [replica["id"], logs["id"]]
    assert ids(resourceIds=["res_orders_replica"]) == [replica["id"]]
    assert ids(resourceTypes=["logging_query"]) == [logs["id"]]
    assert ids(q="CHECKOUT") == [logs["id"]]
    assert ids(q="replica") == [replica["id"]]
    assert ids(q="db_readonly") == [replica["id"]]
    assert ids(start="2026-10-19T10:00:00Z") == [replica["id"]]
    assert ids(end="2026-10-19T10:00:00Z") == [logs["id"]]

    resp = client.get("/api/requests/", params={"start": "yesterday"}, headers=dev["headers"])
    assert resp.status_code == 422
    resp = client.get("/api/requests/", params={"statuses": ["bogus"]}, headers=dev["headers"])
    assert resp.status_code == 422


def test_admin_request_lists(client, admin, make_user):
    dev = make_user("dev@example.com", name="Dev Person")
    first = _request(client, dev["headers"]).json()
    second = _request(client, dev["headers"], resource_id="res_test_run").json()
    client.post(f"/api/requests/{first['id']}/decision", json={"approve": True}, headers=admin["headers"])

    assert client.get("/api/requests/admin", headers=dev["headers"]).status_code == 403

    rows = client.get("/api/requests/admin", headers=admin["headers"]).json()
    assert {r["request"]["id"] for r in rows} == {first["id"], second["id"]}
    assert all(r["requesterName"] == "Dev Person" for r in rows)
    assert all(r["requesterEmail"] == "dev@example.com" for r in rows)

    pending = client.get("/api/requests/admin/pending", headers=admin["headers"]).json()
    assert [r["request"]["id"] for r in pending] == [second["id"]]


def test_metrics_for_caller(client, admin, make_user):
    dev = make_user("dev@example.com")
    logs = _request(client, dev["headers"]).json()
    _request(client, dev["headers"], resource_id="res_orders_replica", hours=None)
    client.post(f"/api/requests/{logs['id']}/decision", json={"approve": True}, headers=admin["headers"])
    resp = client.post(
        "/api/bookings/",
        json={"envId": "env_dev", "durationMinutes": 60, "justification": "feature branch"},
        headers=dev["headers"],
    )
    assert resp.status_code == 201

    resp = client.get("/api/metrics/me", headers=dev["headers"])
    assert resp.status_code == 200
    assert resp.json() == {
        "activeAccesses": 2,
        "pending": 1,
        "expiring7d": 2,
        "activeDeploymentLocks": 1,
    }


def test_usage_analytics_is_admin_only(client, clock, admin, make_user):
    dev = make_user("dev@example.com")
    booking = client.post(
        "/api/bookings/",
        json={"envId": "env_dev", "durationMinutes": 60, "justification": "feature branch"},
        headers=dev["headers"],
    ).json()
    _request(client, dev["headers"])

    assert client.get("/api/metrics/usage", headers=dev["headers"]).status_code == 403

    clock.advance(minutes=30)
    usage = client.get("/api/metrics/usage", headers=admin["headers"]).json()
    dev_env = usage["environments"][0]
    assert dev_env["envId"] == "env_dev"
    assert dev_env["totalBookings"] == 1
    assert dev_env["liveNow"] == 1
    assert dev_env["bookedMinutes"] == 30
    assert usage["requestsByStatus"] == {"pending": 1, "approved": 1, "denied": 0, "expired": 0}

    client.post(f"/api/bookings/{booking['id']}/release", headers=dev["headers"])
    dev_env = client.get("/api/metrics/usage", headers=admin["headers"]).json()["environments"][0]
    assert dev_env["liveNow"] == 0
    assert dev_env["releasedEarly"] == 1
