"""Tests for projecting group grant payloads into GrantDecision."""

import pytest

from src.wallet_gate.governance.decision import (
    ALLOW_ALL,
    ALLOW_ALL_FIELDS,
    GrantDecision,
    project,
)

pytestmark = pytest.mark.unit


# ============================================================================
# CONSERVATIVE DEFAULTS
# ============================================================================


@pytest.mark.parametrize("granted", [None, [], "all", 42, {}])
def test_unrecognized_payload_grants_nothing(granted):
    decision = project(granted)

    assert decision == GrantDecision.empty()
    assert decision.allows_all_protocols() is False
    assert decision.spending_ceiling is None


def test_empty_protocol_list_is_not_allow_all():
    decision = project({"protocols": []})

    assert decision.protocols == frozenset()
    assert decision.allows_all_protocols() is False


# ============================================================================
# PROTOCOLS
# ============================================================================


def test_protocol_entry_shapes():
    decision = project(
        {
            "protocolPermissions": [
                {"protocolID": [2, "todo list"]},
                {"protocolID": "chat"},
                {"name": "calendar"},
                [1, "notes"],
                "mail",
                {"protocolID": [1]},
                17,
            ]
        }
    )

    assert decision.protocols == frozenset({"todo list", "chat", "calendar", "notes", "mail"})


def test_protocol_permissions_take_precedence_over_protocols():
    decision = project({"protocolPermissions": ["a"], "protocols": ["b"]})

    assert decision.protocols == frozenset({"a"})


@pytest.mark.parametrize("granted", [{"protocols": "all"}, {"protocols": "ALL"}, {"allProtocols": True}])
def test_explicit_allow_all_protocols(granted):
    decision = project(granted)

    assert decision.protocols is ALLOW_ALL
    assert decision.allows_all_protocols() is True


def test_all_protocols_flag_must_be_true():
    assert project({"allProtocols": "yes"}).allows_all_protocols() is False


# ============================================================================
# BASKETS AND CERTIFICATES
# ============================================================================


def test_basket_shapes():
    decision = project({"basketAccess": ["photos", {"basket": "videos"}, {"basket": ""}, 3]})

    assert decision.baskets == frozenset({"photos", "videos"})
    assert project({"baskets": ["music"]}).baskets == frozenset({"music"})


def test_certificate_rules():
    decision = project(
        {
            "certificateAccess": [
                {"type": "kyc", "fields": ["name", "dob"]},
                {"certificateType": "email-cert"},
                {"type": "open", "fields": []},
                {"fields": ["orphan"]},
                "junk",
            ]
        }
    )

    assert [rule.type for rule in decision.certificates] == ["kyc", "email-cert", "open"]
    assert decision.certificate_rule("kyc").fields == frozenset({"name", "dob"})
    assert decision.certificate_rule("email-cert").fields is ALLOW_ALL_FIELDS
    assert decision.certificate_rule("open").allows_any_field() is True
    assert decision.certificate_rule("missing") is None


@pytest.mark.parametrize(
    "fields",
    [{"email": True}, "email", 7, [1, 2], [""]],
)
def test_malformed_certificate_fields_grant_nothing(fields):
    """Only an absent or empty list means any field; other shapes drop the rule."""
    decision = project({"certificates": [{"type": "T", "fields": fields}]})

    assert decision.certificates == ()
    assert decision.certificate_rule("T") is None


def test_certificate_fields_ignore_non_string_entries():
    decision = project({"certificates": [{"type": "T", "fields": ["email", 3, None]}]})

    assert decision.certificate_rule("T").fields == frozenset({"email"})


# ============================================================================
# SPENDING
# ============================================================================


@pytest.mark.parametrize(
    "granted,expected",
    [
        ({"spendingAuthorization": {"satoshis": 5000}}, 5000),
        ({"spending": 1200}, 1200),
        ({"spending": 99.9}, 99),
        ({"spending": {"satoshis": 0}}, 0),
        ({"spending": True}, None),
        ({"spending": -5}, None),
        ({"spending": float("nan")}, None),
        ({"spending": float("inf")}, None),
        ({"spendingAuthorization": {"satoshis": float("-inf")}}, None),
        ({"spending": "100"}, None),
        ({"spending": {"amount": 5}}, None),
    ],
)
def test_spending_ceiling(granted, expected):
    assert project(granted).spending_ceiling == expected


def test_summary_is_json_friendly():
    decision = project(
        {
            "protocols": "all",
            "baskets": ["b"],
            "certificates": [{"type": "kyc"}],
            "spending": 10,
        }
    )

    assert decision.summary() == {
        "protocols": "all",
        "baskets": ["b"],
        "certificates": [{"type": "kyc", "fields": "all"}],
        "spending_ceiling": 10,
    }
