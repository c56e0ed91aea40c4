from dataclasses import dataclass

from fastapi import HTTPException, status
from jose import JWTError, jwt
from starlette.requests import Request

from app.core.config import get_settings


@dataclass
class TokenClaims:
    sub: str
    actor_type: str
    roles: list[str]


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_token(token: str) -> TokenClaims:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise _unauthorized("Invalid token") from exc
    subject = payload.get("sub")
    if not subject:
        raise _unauthorized("Invalid token")
    roles = payload.get("roles", [])
    if not isinstance(roles, list):
        roles = []
    return TokenClaims(
        sub=str(subject),
        actor_type=str(payload.get("actor_type", "user")),
        roles=[str(role) for role in roles],
    )


def create_token(sub: str, actor_type: str = "user", roles: list[str] | None = None) -> str:
    settings = get_settings()
    claims = {"sub": sub, "actor_type": actor_type, "roles": roles or []}
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


async def get_token_claims(request: Request) -> TokenClaims:
    auth_header = request.headers.get("authorization", "")
    token = auth_header[len("Bearer ") :] if auth_header.startswith("Bearer ") else ""
    if not token:
        raise _unauthorized("Missing bearer token")

    claims = decode_token(token)
    context = getattr(request.state, "context", None)
    if context is not None:
        context.actor_id = claims.sub
        context.actor_type = claims.actor_type
    return claims
