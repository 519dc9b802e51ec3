"""
HTTP-level tests for the public and admin endpoints, with integrations faked.
"""

import asyncio
import plistlib

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.services.app_store_connect import AppStoreConnectError
from app.services.ci_service import BuildTriggerError
from app.services.email_service import EmailDeliveryError


UDID = "00000000-0000-0000-0000-000000000001"
DEVICE_PLIST = plistlib.dumps({"UDID": UDID, "PRODUCT": "iPhone14,2", "VERSION": "21B91"})
ADMIN_AUTH = ("admin", "test-pass")


@pytest.fixture
def client(service, apply_service_override):
    apply_service_override(app, service)
    return TestClient(app)


def _register(client, email="a@x.com") -> str:
    response = client.post("/register", json={"email": email})
    assert response.status_code in (200, 201)
    return response.json()["testerId"]


def test_register_new_then_existing(client):
    first = client.post("/register", json={"email": "a@x.com"})
    second = client.post("/register", json={"email": "a@x.com"})

    assert first.status_code == 201
    assert second.status_code == 200
    assert first.json()["testerId"] == second.json()["testerId"]
    assert first.json()["nextUrl"].endswith(f"/get-udid?testerId={first.json()['testerId']}")


@pytest.mark.parametrize(
    "body,code",
    [({}, "MISSING_EMAIL"), ({"email": ""}, "MISSING_EMAIL"), ({"email": "nope"}, "INVALID_EMAIL")],
)
def test_register_validation(client, body, code):
    response = client.post("/register", json=body)

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == code


def test_get_udid_serves_mobileconfig(client, monkeypatch):
    monkeypatch.setattr("app.services.signing_service.settings.SSL_CERT", "")
    monkeypatch.setattr("app.services.signing_service.settings.SSL_KEY", "")
    tester_id = _register(client)

    response = client.get("/get-udid", params={"testerId": tester_id})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/x-apple-aspen-config")
    assert "register-device.mobileconfig" in response.headers["content-disposition"]
    profile = plistlib.loads(response.content)
    assert profile["PayloadType"] == "Profile Service"
    assert profile["PayloadContent"]["URL"].endswith(f"/udid/callback?testerId={tester_id}")


def test_get_udid_errors(client):
    assert client.get("/get-udid").json()["detail"]["code"] == "MISSING_TESTER_ID"

    response = client.get("/get-udid", params={"testerId": "unknown"})
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "TESTER_NOT_FOUND"


def test_udid_callback_acknowledges_and_schedules(client, service, recording_runner):
    tester_id = _register(client)

    response = client.post(
        "/udid/callback",
        params={"testerId": tester_id},
        content=b"\x30\x80signed-envelope" + DEVICE_PLIST + b"\x00sig",
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/x-apple-aspen-config")
    assert plistlib.loads(response.content)["PayloadType"] == "Configuration"

    tester = service.get_tester(tester_id)
    assert tester.status == "DEVICE_REGISTERED"
    assert tester.udid == UDID
    assert [device.udid for device in service.list_devices()] == [UDID]
    assert recording_runner.submitted == [("process_device_registration", (tester_id, UDID))]


def test_udid_callback_rejects_garbage(client, service):
    tester_id = _register(client)

    response = client.post("/udid/callback", params={"testerId": tester_id}, content=b"garbage")

    assert response.status_code == 400
    assert "text/html" in response.headers["content-type"]
    assert service.list_devices() == []


def test_udid_callback_rejects_malformed_plist_value(client, service):
    tester_id = _register(client)
    body = (
        b"<plist><dict><key>UDID</key><string>x</string>"
        b"<key>D</key><date>garbage</date></dict></plist>"
    )

    response = client.post("/udid/callback", params={"testerId": tester_id}, content=body)

    assert response.status_code == 400
    assert "text/html" in response.headers["content-type"]
    assert service.list_devices() == []


def test_udid_callback_unknown_tester_is_html_404(client):
    response = client.post("/udid/callback", params={"testerId": "unknown"}, content=DEVICE_PLIST)

    assert response.status_code == 404
    assert "text/html" in response.headers["content-type"]


def test_udid_callback_requires_tester_id(client):
    response = client.post("/udid/callback", content=DEVICE_PLIST)

    assert response.status_code == 400


def test_manual_udid(client, service):
    tester_id = _register(client)

    response = client.post("/udid/manual", params={"testerId": tester_id}, json={"udid": UDID})

    assert response.status_code == 200
    assert response.json() == {"success": True, "testerId": tester_id, "udid": UDID}
    assert service.get_tester(tester_id).status == "DEVICE_REGISTERED"


def test_manual_short_udid_rejected(client, service, recording_runner):
    tester_id = _register(client)

    response = client.post("/udid/manual", params={"testerId": tester_id}, json={"udid": "short"})

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "INVALID_UDID"
    assert service.list_devices() == []
    assert service.list_builds() == []
    assert recording_runner.submitted == []


def test_manual_udid_missing(client):
    tester_id = _register(client)

    response = client.post("/udid/manual", params={"testerId": tester_id}, json={})

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "MISSING_UDID"


def test_build_completed_flow(client, service, fake_email_service):
    tester_id = _register(client)
    client.post("/udid/manual", params={"testerId": tester_id}, json={"udid": UDID})
    build = asyncio.run(service.process_device_registration(tester_id, UDID))

    response = client.post(
        "/build-completed",
        json={"buildId": build.id, "downloadUrl": "https://x/y.ipa", "testerId": tester_id},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["notificationSent"] is True
    assert data["build"]["status"] == "COMPLETED"
    assert data["build"]["downloadUrl"] == "https://x/y.ipa"
    assert data["build"]["devicesIncluded"] == [UDID]
    assert service.get_tester(tester_id).status == "EMAIL_SENT"


def test_build_completed_notification_failure_is_reported(client, service, fake_email_service):
    fake_email_service.send_download_link.side_effect = EmailDeliveryError("smtp down")
    tester_id = _register(client)
    client.post("/udid/manual", params={"testerId": tester_id}, json={"udid": UDID})
    build = asyncio.run(service.process_device_registration(tester_id, UDID))

    response = client.post(
        "/build-completed",
        json={"buildId": build.id, "downloadUrl": "https://x/y.ipa", "testerId": tester_id},
    )

    assert response.status_code == 200
    assert response.json()["notificationSent"] is False
    assert response.json()["build"]["status"] == "COMPLETED"


def test_build_completed_unknown_build(client):
    response = client.post("/build-completed", json={"buildId": "unknown", "downloadUrl": "https://x/y.ipa"})

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "BUILD_NOT_FOUND"


@pytest.mark.parametrize(
    "body,code",
    [({"downloadUrl": "https://x/y.ipa"}, "MISSING_BUILD_ID"), ({"buildId": "b1"}, "MISSING_DOWNLOAD_URL")],
)
def test_build_completed_validation(client, body, code):
    response = client.post("/build-completed", json=body)

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == code


def test_admin_endpoints_require_auth(client):
    for path in ["/testers", "/builds", "/devices", "/devices/vendor", "/ci/runs/1"]:
        assert client.get(path).status_code == 401, path


def test_admin_listing_and_detail(client, service):
    tester_id = _register(client)
    client.post("/udid/manual", params={"testerId": tester_id}, json={"udid": UDID})
    build = asyncio.run(service.process_device_registration(tester_id, UDID))

    testers = client.get("/testers", auth=ADMIN_AUTH).json()["testers"]
    assert [t["id"] for t in testers] == [tester_id]

    detail = client.get(f"/testers/{tester_id}", auth=ADMIN_AUTH).json()
    assert detail["tester"]["email"] == "a@x.com"
    assert [b["id"] for b in detail["builds"]] == [build.id]

    builds = client.get("/builds", auth=ADMIN_AUTH).json()["builds"]
    assert builds[0]["testerId"] == tester_id

    assert client.get(f"/builds/{build.id}", auth=ADMIN_AUTH).json()["build"]["id"] == build.id
    assert client.get("/builds/unknown", auth=ADMIN_AUTH).status_code == 404

    devices = client.get("/devices", auth=ADMIN_AUTH).json()["devices"]
    assert devices[0]["udid"] == UDID


def test_admin_purge(client, service):
    tester_id = _register(client)

    assert client.delete(f"/testers/{tester_id}", auth=ADMIN_AUTH).status_code == 204
    assert client.get(f"/testers/{tester_id}", auth=ADMIN_AUTH).status_code == 404
    assert client.delete(f"/testers/{tester_id}", auth=ADMIN_AUTH).status_code == 404


def test_vendor_devices(client, fake_asc_client):
    fake_asc_client.list_devices.return_value = [{"id": "DEV1", "attributes": {"udid": UDID}}]

    response = client.get("/devices/vendor", auth=ADMIN_AUTH)

    assert response.status_code == 200
    assert response.json()["devices"][0]["id"] == "DEV1"


def test_vendor_devices_upstream_error(client, fake_asc_client):
    fake_asc_client.list_devices.side_effect = AppStoreConnectError("boom", status_code=500)

    response = client.get("/devices/vendor", auth=ADMIN_AUTH)

    assert response.status_code == 502


def test_pipeline_run_passthrough(client, fake_ci_client):
    fake_ci_client.get_workflow_run_status.return_value = {
        "id": 42,
        "status": "completed",
        "conclusion": "success",
        "html_url": "https://github.com/acme/ios-app/actions/runs/42",
    }

    response = client.get("/ci/runs/42", auth=ADMIN_AUTH)

    assert response.status_code == 200
    assert response.json()["conclusion"] == "success"
    assert response.json()["htmlUrl"].endswith("/runs/42")


def test_pipeline_run_not_found(client, fake_ci_client):
    fake_ci_client.get_workflow_run_status.side_effect = BuildTriggerError("nope", reason="not_found", status_code=404)

    response = client.get("/ci/runs/999", auth=ADMIN_AUTH)

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "RUN_NOT_FOUND"


def test_request_id_header(client):
    generated = client.get("/healthz")
    echoed = client.get("/healthz", headers={"X-Request-ID": "req-123"})

    assert generated.headers["X-Request-ID"]
    assert echoed.headers["X-Request-ID"] == "req-123"
