from functools import lru_cache

import requests
from jose import JWTError, jwt

from chat.errors import AuthenticationError
from config.settings import settings

JWKS_TIMEOUT_SECONDS = 5


@lru_cache(maxsize=1)
def get_jwks() -> dict:
    """
    Fetch the user pool's JSON Web Key Set (cached for the warm container).

    Returns:
        dict: {"keys": [...]} as published by Cognito
    """
    response = requests.get(
        f"{settings.cognito_issuer}/.well-known/jwks.json",
        timeout=JWKS_TIMEOUT_SECONDS,
    )
    response.raise_for_status()
    return response.json()


def _signing_key(token: str) -> dict:
    kid = jwt.get_unverified_header(token).get("kid")
    for key in get_jwks().get("keys", []):
        if key.get("kid") == kid:
            return key
    raise AuthenticationError("Unknown token signing key")


def decode_access_token(token: str) -> dict:
    """
    Decode a Cognito access token and return its claims.

    Signature, expiry and issuer are verified against the user pool JWKS when
    VERIFY_TOKEN_SIGNATURE is enabled; otherwise the payload is only decoded
    (the API Gateway authorizer in front of the API has verified it).

    Args:
        token: Raw JWT (three dot-separated parts)

    Returns:
        dict: Decoded token claims

    Raises:
        AuthenticationError: If the token is malformed or fails verification
    """
    token = (token or "").strip()
    if not token:
        raise AuthenticationError("Missing token")
    if token.count(".") != 2:
        raise AuthenticationError("Invalid access token format (expected 3 parts)")

    try:
        if not settings.VERIFY_TOKEN_SIGNATURE:
            return jwt.get_unverified_claims(token)

        claims = jwt.decode(
            token,
            _signing_key(token),
            algorithms=["RS256"],
            issuer=settings.cognito_issuer,
            # Access tokens carry client_id instead of aud
            options={"verify_aud": False},
        )
    except JWTError as e:
        raise AuthenticationError("Invalid access token") from e
    except requests.RequestException as e:
        raise AuthenticationError("Could not fetch token signing keys") from e

    if settings.COGNITO_APP_CLIENT_ID and claims.get("client_id") != settings.COGNITO_APP_CLIENT_ID:
        raise AuthenticationError("Token was not issued for this client")
    return claims
