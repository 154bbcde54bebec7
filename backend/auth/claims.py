"""
Normalized user claims.

Identity arrives in several shapes:
- Cognito access-token payload (WebSocket $connect query token, REST bearer)
- API Gateway authorizer claims (requestContext.authorizer.claims or
  requestContext.authorizer.jwt.claims)
- A registered connection record (every WebSocket action after $connect)

Each shape goes through an adapter here and comes out as a UserClaims;
handlers never look at raw provider claims.
"""

from dataclasses import dataclass, field, replace
from typing import Optional

from chat.errors import AuthenticationError, AuthorizationError
from chat.keys import CLINIC_PREFIX, PROF_PREFIX, clinic_key, prof_key
from chat.names import display_from_claims
from chat.types import ConnectionRecord, UserType

CLINIC_GROUPS = frozenset({
    "ClinicAdmin",
    "ClinicManager",
    "ClinicViewer",
    "Root",
})
PROFESSIONAL_GROUPS = frozenset({
    "AssociateDentist",
    "DentalAssistant",
    "Dental Hygienist",
    "DualRoleFrontDA",
    "ExpandedFunctionsDA",
})


@dataclass
class UserClaims:
    """Caller identity as seen by the messaging handlers."""
    user_type: UserType
    sub: str
    clinic_id: Optional[str] = None
    email: str = ""
    name: str = ""
    groups: list[str] = field(default_factory=list)

    @property
    def is_clinic(self) -> bool:
        return self.user_type == UserType.CLINIC

    @property
    def participant_key(self) -> str:
        """
        clinic#<clinicId> for clinic users, prof#<sub> for professionals.

        Raises:
            AuthenticationError: If a clinic user has no clinic id
        """
        if self.is_clinic:
            if not self.clinic_id:
                raise AuthenticationError("Clinic user requires clinicId")
            return clinic_key(self.clinic_id)
        return prof_key(self.sub)

    @property
    def display_name(self) -> str:
        return self.name or self.email or ""


def parse_groups(groups_claim) -> list[str]:
    """cognito:groups as a list (claim may be a list or a comma-separated string)."""
    if isinstance(groups_claim, str):
        return [g.strip() for g in groups_claim.split(",") if g.strip()]
    if isinstance(groups_claim, (list, tuple)):
        return [str(g) for g in groups_claim]
    return []


def classify_user_type(groups: list[str], user_type_claim: Optional[str] = None) -> UserType:
    """
    Clinic vs Professional from the group taxonomy.

    Clinic groups win over professional groups; with no known group the
    custom:user_type claim decides, defaulting to Professional.
    """
    if any(g in CLINIC_GROUPS for g in groups):
        return UserType.CLINIC
    if any(g in PROFESSIONAL_GROUPS for g in groups):
        return UserType.PROFESSIONAL
    if user_type_claim and str(user_type_claim).strip().lower() == "clinic":
        return UserType.CLINIC
    return UserType.PROFESSIONAL


def _from_claims_dict(claims: dict) -> UserClaims:
    sub = claims.get("sub")
    if not sub:
        raise AuthenticationError("User sub not found in token claims")

    groups = parse_groups(claims.get("cognito:groups"))
    clinic_id = claims.get("custom:clinicId")
    return UserClaims(
        user_type=classify_user_type(groups, claims.get("custom:user_type")),
        sub=str(sub),
        clinic_id=str(clinic_id).strip() if clinic_id else None,
        email=claims.get("email") or "",
        name=display_from_claims(claims),
        groups=groups,
    )


def claims_from_token_payload(payload: dict) -> UserClaims:
    """
    Adapter for a decoded Cognito access token.

    Raises:
        AuthenticationError: If sub is missing or the token is not an access token
    """
    if payload.get("token_use") != "access":
        raise AuthenticationError(
            f"Invalid token type: expected 'access', got '{payload.get('token_use')}'"
        )
    return _from_claims_dict(payload)


def claims_from_authorizer(request_context: dict) -> Optional[UserClaims]:
    """
    Adapter for API Gateway authorizer claims (REST: authorizer.claims,
    HTTP API: authorizer.jwt.claims).

    Returns:
        UserClaims, or None when the request carries no authorizer claims
    """
    authorizer = (request_context or {}).get("authorizer") or {}
    claims = authorizer.get("claims") or (authorizer.get("jwt") or {}).get("claims")
    if not claims or not claims.get("sub"):
        return None
    return _from_claims_dict(claims)


def claims_from_connection(record: ConnectionRecord) -> UserClaims:
    """
    Adapter for a registered connection: the identity the connection was
    registered with at $connect time.

    Raises:
        AuthenticationError: If the stored participant key is malformed
    """
    key = record.participant_key
    if key.startswith(CLINIC_PREFIX):
        return UserClaims(
            user_type=UserType.CLINIC,
            sub=record.sub,
            clinic_id=key[len(CLINIC_PREFIX):],
            email=record.display,
            name=record.display,
        )
    if key.startswith(PROF_PREFIX):
        return UserClaims(
            user_type=UserType.PROFESSIONAL,
            sub=key[len(PROF_PREFIX):],
            email=record.display,
            name=record.display,
        )
    raise AuthenticationError(f"Invalid userKey: {key}")


def cross_check(
    connection_claims: UserClaims,
    token_claims: UserClaims,
    body_clinic_id: Optional[str] = None,
) -> UserClaims:
    """
    Reconcile the registered identity with a token supplied in a later frame.

    The registered identity stays authoritative: a token may fill in missing
    display fields but never changes the user type, subject or clinic.

    Raises:
        AuthorizationError: If the token names a different clinic or user
    """
    if connection_claims.is_clinic:
        for claimed in (body_clinic_id, token_claims.clinic_id):
            if claimed and str(claimed) != connection_claims.clinic_id:
                raise AuthorizationError("Invalid clinicId for this connection")
    elif token_claims.sub != connection_claims.sub:
        raise AuthorizationError("Token does not match this connection")

    return replace(
        connection_claims,
        sub=connection_claims.sub or token_claims.sub,
        name=connection_claims.name or token_claims.name,
        email=connection_claims.email or token_claims.email,
    )


def authorize_party(claims: UserClaims, clinic_id: str, professional_sub: str) -> None:
    """
    Require the caller to be one of the two parties of a conversation.

    Raises:
        AuthorizationError: If the caller is neither the clinic nor the professional
    """
    if claims.is_clinic:
        allowed = bool(claims.clinic_id) and claims.clinic_id == str(clinic_id)
    else:
        allowed = bool(claims.sub) and claims.sub == str(professional_sub)
    if not allowed:
        raise AuthorizationError("Sender not authorized for this conversation")
