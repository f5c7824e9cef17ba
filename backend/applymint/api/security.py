import jwt
from fastapi import Cookie, Header

from applymint.errors import AuthenticationError
from applymint.services.auth_service import decode_token

ACCESS_TOKEN_COOKIE = "sb-access-token"


def get_current_user(
    authorization: str = Header(default=""),
    access_token_cookie: str | None = Cookie(default=None, alias=ACCESS_TOKEN_COOKIE),
) -> dict:
    # EventSource cannot send headers, so the stream falls back to the cookie.
    token = ""
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1].strip()
    elif access_token_cookie:
        token = access_token_cookie.strip()
    if not token:
        raise AuthenticationError("Unauthorized")
    try:
        payload = decode_token(token)
    except jwt.PyJWTError as exc:
        raise AuthenticationError("Unauthorized") from exc
    user_id = str(payload.get("sub", "")).strip()
    if not user_id:
        raise AuthenticationError("Unauthorized")
    return {
        "userId": user_id,
        "email": payload.get("email"),
    }
