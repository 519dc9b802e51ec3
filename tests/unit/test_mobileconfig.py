import plistlib

import pytest

from app.services.mobileconfig_service import (
    DEVICE_ATTRIBUTES,
    ProfileParseError,
    build_acknowledgement_profile,
    build_enrollment_profile,
    parse_device_attributes,
)

DEVICE_PLIST = plistlib.dumps(
    {"UDID": "00008110-000A1C2E3F4B5D6E", "PRODUCT": "iPhone14,2", "VERSION": "21B91"}
)
MALFORMED_DATE_PLIST = (
    b"<plist><dict><key>UDID</key><string>x</string>"
    b"<key>D</key><date>garbage</date></dict></plist>"
)


def test_enrollment_profile_points_callback_at_tester(monkeypatch):
    monkeypatch.setattr("app.services.mobileconfig_service.settings.PUBLIC_BASE_URL", "https://dist.example.com/")

    profile = plistlib.loads(build_enrollment_profile("tester-1"))

    assert profile["PayloadType"] == "Profile Service"
    assert profile["PayloadVersion"] == 1
    assert profile["PayloadContent"]["URL"] == "https://dist.example.com/udid/callback?testerId=tester-1"
    assert profile["PayloadContent"]["DeviceAttributes"] == DEVICE_ATTRIBUTES
    assert "UDID" in profile["PayloadContent"]["DeviceAttributes"]


def test_enrollment_profile_uuid_is_unique():
    first = plistlib.loads(build_enrollment_profile("tester-1"))
    second = plistlib.loads(build_enrollment_profile("tester-1"))

    assert first["PayloadUUID"] != second["PayloadUUID"]


def test_acknowledgement_profile_is_empty_configuration():
    profile = plistlib.loads(build_acknowledgement_profile("tester-1"))

    assert profile["PayloadType"] == "Configuration"
    assert profile["PayloadContent"] == []


def test_parse_bare_plist():
    attributes = parse_device_attributes(DEVICE_PLIST)

    assert attributes.udid == "00008110-000A1C2E3F4B5D6E"
    assert attributes.product == "iPhone14,2"
    assert attributes.version == "21B91"


def test_parse_plist_inside_signed_envelope():
    body = b"\x30\x80\x06\x09\x2a\x86\x48junk-der-prefix" + DEVICE_PLIST + b"\x00\xa0\x82signature-bytes"

    attributes = parse_device_attributes(body)

    assert attributes.udid == "00008110-000A1C2E3F4B5D6E"


def test_parse_plist_without_prolog_inside_envelope():
    bare = DEVICE_PLIST[DEVICE_PLIST.index(b"<plist"):]
    body = b"\x30\x80\x06\x09\x2a\x86\x48junk-der-prefix" + bare + b"\x00\xa0\x82signature-bytes"

    attributes = parse_device_attributes(body)

    assert attributes.udid == "00008110-000A1C2E3F4B5D6E"
    assert attributes.product == "iPhone14,2"


def test_parse_lowercase_keys():
    body = plistlib.dumps({"udid": "abc-123", "product": "iPad13,1"})

    attributes = parse_device_attributes(body)

    assert attributes.udid == "abc-123"
    assert attributes.product == "iPad13,1"
    assert attributes.version is None


@pytest.mark.parametrize(
    "body",
    [
        b"",
        b"this is not a plist",
        b"<?xml version=\"1.0\"?><plist version=\"1.0\"><dict><key>UDID</key></plist>",
        MALFORMED_DATE_PLIST,
    ],
)
def test_parse_rejects_unreadable_payloads(body):
    with pytest.raises(ProfileParseError):
        parse_device_attributes(body)


def test_parse_rejects_payload_without_udid():
    with pytest.raises(ProfileParseError):
        parse_device_attributes(plistlib.dumps({"PRODUCT": "iPhone14,2"}))


def test_parse_rejects_non_dict_plist():
    with pytest.raises(ProfileParseError):
        parse_device_attributes(plistlib.dumps(["UDID"]))
