"""
Unit tests for token decoding and claims normalization.

Run: python3 -m pytest auth/__tests__/test_claims.py -v
"""

import pytest
from unittest.mock import patch

from auth.claims import (
    UserClaims,
    authorize_party,
    claims_from_authorizer,
    claims_from_connection,
    claims_from_token_payload,
    classify_user_type,
    cross_check,
    parse_groups,
)
from auth.utils import decode_access_token
from chat.__tests__.fakes import make_access_token
from chat.errors import AuthenticationError, AuthorizationError
from chat.types import ConnectionRecord, UserType
from config.settings import settings


class TestDecodeAccessToken:

    def test_unverified_decode(self):
        token = make_access_token("P1", groups=["AssociateDentist"])
        claims = decode_access_token(token)
        assert claims["sub"] == "P1"
        assert claims["token_use"] == "access"

    @pytest.mark.parametrize("token", ["", "   ", "only.two", None])
    def test_malformed_tokens(self, token):
        with pytest.raises(AuthenticationError):
            decode_access_token(token)

    def test_garbage_payload(self):
        with pytest.raises(AuthenticationError):
            decode_access_token("aaa.bbb.ccc")

    def test_client_id_mismatch(self, monkeypatch):
        monkeypatch.setattr(settings, "COGNITO_APP_CLIENT_ID", "expected-client")
        token = make_access_token("P1", client_id="other-client")

        with pytest.raises(AuthenticationError):
            decode_access_token(token)

    def test_verified_decode_fails_on_unknown_key(self, monkeypatch):
        monkeypatch.setattr(settings, "VERIFY_TOKEN_SIGNATURE", True)
        token = make_access_token("P1")

        with patch("auth.utils.get_jwks", return_value={"keys": []}):
            with pytest.raises(AuthenticationError):
                decode_access_token(token)


class TestClassification:

    def test_parse_groups(self):
        assert parse_groups(["ClinicAdmin"]) == ["ClinicAdmin"]
        assert parse_groups("ClinicAdmin, Root") == ["ClinicAdmin", "Root"]
        assert parse_groups(None) == []

    def test_clinic_group_wins(self):
        assert classify_user_type(["AssociateDentist", "ClinicManager"]) == UserType.CLINIC

    def test_professional_group(self):
        assert classify_user_type(["Dental Hygienist"]) == UserType.PROFESSIONAL

    def test_user_type_claim_fallback(self):
        assert classify_user_type([], "clinic") == UserType.CLINIC
        assert classify_user_type([]) == UserType.PROFESSIONAL


class TestAdapters:

    def test_token_payload_clinic(self):
        claims = claims_from_token_payload({
            "sub": "u1",
            "token_use": "access",
            "cognito:groups": ["ClinicAdmin"],
            "custom:clinicId": "C1",
            "email": "front@smiles.example",
        })
        assert claims.is_clinic
        assert claims.participant_key == "clinic#C1"
        assert claims.name == "front"

    def test_id_token_rejected(self):
        with pytest.raises(AuthenticationError):
            claims_from_token_payload({"sub": "u1", "token_use": "id"})

    def test_missing_sub_rejected(self):
        with pytest.raises(AuthenticationError):
            claims_from_token_payload({"token_use": "access"})

    def test_clinic_without_clinic_id_has_no_key(self):
        claims = claims_from_token_payload({"sub": "u1", "token_use": "access", "cognito:groups": ["Root"]})
        with pytest.raises(AuthenticationError):
            claims.participant_key

    def test_authorizer_claims_rest_and_http(self):
        rest = {"authorizer": {"claims": {"sub": "P1", "cognito:groups": "AssociateDentist"}}}
        http = {"authorizer": {"jwt": {"claims": {"sub": "P1"}}}}
        assert claims_from_authorizer(rest).participant_key == "prof#P1"
        assert claims_from_authorizer(http).participant_key == "prof#P1"
        assert claims_from_authorizer({}) is None

    def test_connection_record(self):
        record = ConnectionRecord("clinic#C1", "conn-1", "Clinic", display="Front Desk", sub="u1")
        claims = claims_from_connection(record)
        assert claims.is_clinic
        assert claims.clinic_id == "C1"
        assert claims.name == "Front Desk"

        prof = claims_from_connection(ConnectionRecord("prof#P1", "conn-2", "Professional"))
        assert prof.sub == "P1"

    def test_malformed_connection_key(self):
        with pytest.raises(AuthenticationError):
            claims_from_connection(ConnectionRecord("admin#1", "conn-1", "Clinic"))


class TestCrossCheck:

    def clinic(self, **kwargs):
        return UserClaims(user_type=UserType.CLINIC, sub="u1", clinic_id="C1", **kwargs)

    def test_clinic_mismatch_rejected(self):
        token = UserClaims(user_type=UserType.CLINIC, sub="u1", clinic_id="C2")
        with pytest.raises(AuthorizationError):
            cross_check(self.clinic(), token)

    def test_body_clinic_id_checked(self):
        with pytest.raises(AuthorizationError):
            cross_check(self.clinic(), self.clinic(), body_clinic_id="C9")

    def test_professional_sub_mismatch_rejected(self):
        conn = UserClaims(user_type=UserType.PROFESSIONAL, sub="P1")
        token = UserClaims(user_type=UserType.PROFESSIONAL, sub="P2")
        with pytest.raises(AuthorizationError):
            cross_check(conn, token)

    def test_token_only_fills_missing_fields(self):
        conn = UserClaims(user_type=UserType.PROFESSIONAL, sub="P1")
        token = UserClaims(user_type=UserType.CLINIC, sub="P1", clinic_id="C5", name="Pat", email="pat@x.com")

        merged = cross_check(conn, token)

        assert merged.user_type == UserType.PROFESSIONAL
        assert merged.clinic_id is None
        assert merged.name == "Pat"


class TestAuthorizeParty:

    def test_parties_allowed(self):
        authorize_party(UserClaims(user_type=UserType.CLINIC, sub="u1", clinic_id="C1"), "C1", "P1")
        authorize_party(UserClaims(user_type=UserType.PROFESSIONAL, sub="P1"), "C1", "P1")

    @pytest.mark.parametrize("claims", [
        UserClaims(user_type=UserType.CLINIC, sub="u1", clinic_id="C2"),
        UserClaims(user_type=UserType.PROFESSIONAL, sub="P2"),
    ])
    def test_outsiders_rejected(self, claims):
        with pytest.raises(AuthorizationError):
            authorize_party(claims, "C1", "P1")
