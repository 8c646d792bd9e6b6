"""
Unit tests for claim projection.
"""

import pytest

from service_relay.app.identity.claims import (
    ANONYMOUS,
    DEFAULT_POLICY,
    IDENTITY_NAME_CLAIM_URI,
    OBJECT_ID_CLAIM_URI,
    ROLE_CLAIM_URI,
    UNKNOWN,
    ClaimPolicy,
    Identity,
    collect_claims,
    first_claim,
    project_claims,
)


class TestDisplayName:
    """Display name fallback chain."""

    def test_name_wins(self):
        claims = {"name": "Alice Example", "preferred_username": "alice@example.com"}
        assert project_claims(claims).display_name == "Alice Example"

    def test_preferred_username_when_no_name(self):
        assert project_claims({"preferred_username": "bob@example.com"}).display_name == "bob@example.com"

    def test_identity_name_uri_then_unique_name(self):
        claims = {IDENTITY_NAME_CLAIM_URI: "carol", "unique_name": "carol@legacy"}
        assert project_claims(claims).display_name == "carol"
        assert project_claims({"unique_name": "carol@legacy"}).display_name == "carol@legacy"

    def test_blank_values_are_skipped(self):
        claims = {"name": "   ", "preferred_username": "dave@example.com"}
        assert project_claims(claims).display_name == "dave@example.com"

    def test_anonymous_when_nothing_matches(self):
        assert project_claims({"email": "x@example.com"}).display_name == ANONYMOUS


class TestSubjectId:
    """Subject id fallback chain."""

    def test_uri_claim_beats_oid(self):
        claims = {OBJECT_ID_CLAIM_URI: "from-uri", "oid": "from-oid"}
        assert project_claims(claims).subject_id == "from-uri"

    def test_oid(self):
        assert project_claims({"oid": "1234"}).subject_id == "1234"

    def test_unknown_without_object_id(self):
        # ``sub`` is pairwise and is not used as the subject id
        assert project_claims({"sub": "pairwise"}).subject_id == UNKNOWN


class TestRoles:
    """Role collection."""

    def test_union_of_both_claim_types_in_order(self):
        claims = {"roles": ["Data.Read", "Admin"], ROLE_CLAIM_URI: ["Admin", "Data.Write"]}
        assert project_claims(claims).roles == ("Data.Read", "Admin", "Data.Write")

    def test_single_string_role(self):
        assert project_claims({"roles": "Data.Read"}).roles == ("Data.Read",)

    def test_no_roles(self):
        assert project_claims({}).roles == ()

    def test_non_string_values_ignored(self):
        assert collect_claims({"roles": ["ok", 3, None, ""]}, ["roles"]) == ["ok"]


def test_first_claim_ignores_non_strings():
    assert first_claim({"name": 42, "preferred_username": "p"}, ["name", "preferred_username"]) == "p"
    assert first_claim({}, ["name"]) is None


def test_custom_policy_changes_precedence():
    policy = ClaimPolicy(display_name_claims=("preferred_username", "name"), anonymous_name="Guest")
    claims = {"name": "Alice Example", "preferred_username": "alice@example.com"}
    assert project_claims(claims, policy).display_name == "alice@example.com"
    assert project_claims({}, policy).display_name == "Guest"


def test_policy_is_immutable():
    with pytest.raises(AttributeError):
        DEFAULT_POLICY.anonymous_name = "Someone"


def test_identity_to_dict():
    identity = Identity(subject_id="1234", display_name="Alice", roles=("Data.Read",))
    assert identity.to_dict() == {"user": "Alice", "userId": "1234", "roles": ["Data.Read"]}
