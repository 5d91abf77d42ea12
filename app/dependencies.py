import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, status, Header, Request
from fastapi.security import OAuth2PasswordBearer
from firebase_admin import auth
from firebase_admin.auth import InvalidIdTokenError, ExpiredIdTokenError, RevokedIdTokenError

from app.errors import InvalidOrExpired
from app.services.entitlements import require_premium

logger = logging.getLogger("app.auth")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token", auto_error=False)

INVITATION_TOKEN_HEADER = "X-Invitation-Token"


@dataclass
class CurrentUser:
    uid: str
    provider: str | None
    email: str | None
    display_name: str | None = None


def _resolve_user_from_token(token: str) -> CurrentUser:
    try:
        decoded_token = auth.verify_id_token(token, check_revoked=False)
        uid = decoded_token.get("uid")
        if not uid:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token: No UID",
                headers={"WWW-Authenticate": "Bearer"},
            )

        firebase_claims = decoded_token.get("firebase", {})
        return CurrentUser(
            uid=uid,
            provider=firebase_claims.get("sign_in_provider"),
            email=decoded_token.get("email"),
            display_name=decoded_token.get("name"),
        )

    except HTTPException:
        raise
    except (InvalidIdTokenError, ExpiredIdTokenError, RevokedIdTokenError) as e:
        logger.info(f"[Auth] Token rejected: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except Exception as e:
        logger.error(f"[Auth] System error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Auth system error",
        )


async def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
) -> CurrentUser:
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    user = _resolve_user_from_token(token)
    request.state.uid = user.uid
    return user


async def get_premium_user(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Authenticated user on a premium tier. Raises EntitlementDenied (402) otherwise."""
    require_premium(current_user.uid)
    return current_user


async def get_invitation_token(
    x_invitation_token: Optional[str] = Header(None, alias=INVITATION_TOKEN_HEADER),
) -> str:
    """
    Guest credential for session-scoped guest routes. A missing header fails the
    same way as a bad token.
    """
    if not x_invitation_token:
        raise InvalidOrExpired()
    return x_invitation_token.strip()
