from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from auth.claims import UserClaims, claims_from_authorizer, claims_from_token_payload
from auth.utils import decode_access_token
from chat.errors import AuthenticationError

# auto_error=False: requests that already passed an API Gateway authorizer
# carry claims in the Lambda event instead of needing a bearer header
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> UserClaims:
    """
    Dependency to get the current caller as normalized UserClaims

    Usage in route:
        @router.get("/api/user")
        async def get_user(current_user: UserClaims = Depends(get_current_user)):
            return current_user

    Identity sources, in order:
    1. API Gateway authorizer claims (Lambda event, available via Mangum)
    2. Authorization: Bearer <Cognito access token>

    Raises:
        HTTPException: 401 if no identity can be established, or a clinic
            user has no clinic id
    """
    aws_event = request.scope.get("aws.event") or {}
    try:
        claims = claims_from_authorizer(aws_event.get("requestContext") or {})
        if claims is None:
            if credentials is None:
                raise AuthenticationError("Not authenticated")
            claims = claims_from_token_payload(decode_access_token(credentials.credentials))
    except AuthenticationError as e:
        raise _unauthorized(e.message)

    if claims.is_clinic and not claims.clinic_id:
        raise _unauthorized("Clinic user requires clinicId")
    return claims
