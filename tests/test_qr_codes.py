import json

import pytest

from visitor_checkin.qr_codes import InvitationReference, build_qr_data, parse_qr_data


def test_parses_invitation_payload():
    text = json.dumps({"type": "visitor_invitation", "invitation_id": "inv1"})
    assert parse_qr_data(text) == InvitationReference(invitation_id="inv1")


def test_issued_payload_parses_back():
    assert parse_qr_data(build_qr_data("abc123")).invitation_id == "abc123"


@pytest.mark.parametrize(
    "text",
    [
        "not json at all",
        "",
        "[1, 2, 3]",
        '"visitor_invitation"',
        '{"invitation_id": "inv1"}',
        '{"type": "other_thing"}',
        '{"type": "other_thing", "invitation_id": "inv1"}',
        '{"type": "visitor_invitation"}',
        '{"type": "visitor_invitation", "invitation_id": ""}',
        '{"type": "visitor_invitation", "invitation_id": 17}',
        '{"type": "visitor_invitation", "invitation_id": "   "}',
    ],
)
def test_rejects_anything_else(text):
    assert parse_qr_data(text) is None


@pytest.mark.parametrize("text", ["[" * 5000, '{"a":' * 5000])
def test_deeply_nested_json_does_not_raise(text):
    assert parse_qr_data(text) is None


def test_invitation_id_is_passed_through_unchanged():
    text = json.dumps({"type": "visitor_invitation", "invitation_id": " inv1 "})
    assert parse_qr_data(text).invitation_id == " inv1 "


def test_none_input_does_not_raise():
    assert parse_qr_data(None) is None
