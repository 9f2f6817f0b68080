import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt

from .config import ALGORITHM, MIN_SECRET_BYTES, ConfigError, Settings
from .credentials import CredentialStore
from .schemas import User

logger = logging.getLogger(__name__)

ROLE_USER = "ROLE_USER"
BEARER_PREFIX = "Bearer "


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Principal:
    """Authenticated caller, resolved per request and never stored."""

    id: int
    username: str
    email: str
    authorities: Tuple[str, ...] = (ROLE_USER,)


class TokenIssuer:
    """Mints and parses HS256 bearer tokens with a static signing key."""

    def __init__(self, secret: str, ttl: timedelta, clock: Callable[[], datetime] = utc_now):
        if not secret or len(secret.encode("utf-8")) < MIN_SECRET_BYTES:
            raise ConfigError(f"JWT signing key must be at least {MIN_SECRET_BYTES} bytes")
        self._secret = secret
        self.ttl = ttl
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenIssuer":
        return cls(settings.jwt_secret, timedelta(minutes=settings.access_token_expire_minutes))

    def create_access_token(self, user: User) -> str:
        issued_at = self._clock()
        expires_at = issued_at + self.ttl
        to_encode = {
            "sub": user.username,
            "email": user.email,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        return jwt.encode(to_encode, self._secret, algorithm=ALGORITHM)

    def extract_claims(self, token: str) -> Dict[str, Any]:
        # Expiry is checked by is_token_valid against the resolved user.
        return jwt.decode(token, self._secret, algorithms=[ALGORITHM], options={"verify_exp": False})

    def is_token_valid(self, claims: Dict[str, Any], user: User) -> bool:
        subject = claims.get("sub")
        if not isinstance(subject, str) or subject.casefold() != user.username.casefold():
            return False
        expires = claims.get("exp")
        if not isinstance(expires, (int, float)):
            return False
        return datetime.fromtimestamp(expires, tz=timezone.utc) >= self._clock()


class AuthGate:
    """HTTP middleware binding an optional principal to ``request.state``.

    The gate never rejects a request. Missing, malformed, forged or expired
    tokens all leave the request anonymous; endpoints decide whether anonymous
    access is allowed through :func:`require_principal`.
    """

    def __init__(self, issuer: TokenIssuer, users: CredentialStore):
        self.issuer = issuer
        self.users = users

    def authenticate(self, authorization: Optional[str], bound: Optional[Principal] = None) -> Optional[Principal]:
        if not authorization or not authorization.startswith(BEARER_PREFIX):
            return bound
        token = authorization[len(BEARER_PREFIX):].strip()
        try:
            claims = self.issuer.extract_claims(token)
        except JWTError as exc:
            logger.debug("Ignoring unparseable bearer token: %s", exc)
            return bound

        username = claims.get("sub")
        if username is None or bound is not None:
            return bound
        user = self.users.find_by_username(username)
        if user is None:
            logger.debug("Token subject '%s' does not resolve to a user", username)
            return None
        if not self.issuer.is_token_valid(claims, user):
            logger.debug("Token for '%s' is expired or does not match the user", username)
            return None
        return Principal(id=user.id, username=user.username, email=user.email)

    async def __call__(self, request: Request, call_next):
        bound = getattr(request.state, "principal", None)
        request.state.principal = self.authenticate(request.headers.get("Authorization"), bound)
        return await call_next(request)


# ---------- Authorization ----------
def current_principal(request: Request) -> Optional[Principal]:
    return getattr(request.state, "principal", None)


def require_principal(principal: Optional[Principal] = Depends(current_principal)) -> Principal:
    if principal is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return principal
