import logging
import os
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field, field_validator

from .config import Settings
from .credentials import CredentialStore, DuplicateUserError
from .lobby import Lobby
from .schemas import AuthResponse, ChatMessage, JoinResponse, MessageAck, OnlineUser, PeerDetails, UserProfile
from .security import AuthGate, Principal, TokenIssuer, require_principal

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------- Request Models ----------
class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=40)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=100)


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class JoinRequest(BaseModel):
    fileTcp: Optional[int] = None
    voiceUdp: Optional[int] = None
    ipOverride: Optional[str] = None


class SendMessageRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=5000)

    @field_validator("text")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("text must not be blank")
        return value


# ---------- Dependencies ----------
def get_users(request: Request) -> CredentialStore:
    return request.app.state.users


def get_issuer(request: Request) -> TokenIssuer:
    return request.app.state.issuer


def get_lobby(request: Request) -> Lobby:
    return request.app.state.lobby


def client_ip(request: Request, override: Optional[str]) -> Optional[str]:
    if override and override.strip():
        return override.strip()
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",", 1)[0].strip()
    return request.client.host if request.client else None


@router.get("/api/health")
def health():
    return {"status": "UP"}


# ---------- Auth Endpoints ----------
@router.post("/api/auth/register", response_model=AuthResponse)
def register(payload: RegisterRequest, users: CredentialStore = Depends(get_users),
             issuer: TokenIssuer = Depends(get_issuer)):
    try:
        user = users.register(payload.username, payload.email, payload.password)
    except DuplicateUserError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return AuthResponse(access_token=issuer.create_access_token(user), user=UserProfile.from_user(user))


@router.post("/api/auth/login", response_model=AuthResponse)
def login(payload: LoginRequest, users: CredentialStore = Depends(get_users),
          issuer: TokenIssuer = Depends(get_issuer)):
    user = users.authenticate(payload.username, payload.password)
    if user is None:
        logger.info("Rejected login for '%s'", payload.username)
        raise HTTPException(status_code=400, detail="Invalid credentials")
    return AuthResponse(access_token=issuer.create_access_token(user), user=UserProfile.from_user(user))


@router.get("/api/auth/me", response_model=UserProfile)
def me(principal: Principal = Depends(require_principal), users: CredentialStore = Depends(get_users)):
    user = users.find_by_username(principal.username)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return UserProfile.from_user(user)


# ---------- Lobby ----------
@router.post("/api/lobby/join", response_model=JoinResponse)
def join(payload: JoinRequest, request: Request, principal: Principal = Depends(require_principal),
         lobby: Lobby = Depends(get_lobby)):
    lobby.join(principal.username, client_ip(request, payload.ipOverride), payload.fileTcp, payload.voiceUdp)
    return JoinResponse(
        success=True,
        user=principal.username,
        users=lobby.online_users(),
        messages=lobby.recent_messages(),
    )


@router.post("/api/lobby/leave", status_code=status.HTTP_204_NO_CONTENT)
def leave(principal: Principal = Depends(require_principal), lobby: Lobby = Depends(get_lobby)):
    if not lobby.leave(principal.username):
        raise HTTPException(status_code=404, detail="User is not in the lobby")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/api/lobby/users", response_model=List[OnlineUser])
def list_users(principal: Principal = Depends(require_principal), lobby: Lobby = Depends(get_lobby)):
    return lobby.online_users()


@router.get("/api/lobby/messages", response_model=List[ChatMessage])
def list_messages(principal: Principal = Depends(require_principal), lobby: Lobby = Depends(get_lobby)):
    return lobby.recent_messages()


@router.post("/api/lobby/message", response_model=MessageAck, status_code=status.HTTP_202_ACCEPTED)
def send_message(payload: SendMessageRequest, principal: Principal = Depends(require_principal),
                 lobby: Lobby = Depends(get_lobby)):
    message = lobby.post(principal.username, payload.text)
    if message is None:
        rejected = MessageAck(accepted=False, reason="user must be logged in")
        return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content=rejected.model_dump(by_alias=True))
    return MessageAck(accepted=True, message=message)


@router.get("/api/lobby/peer/{user}", response_model=PeerDetails)
def peer(user: str, principal: Principal = Depends(require_principal), lobby: Lobby = Depends(get_lobby)):
    details = lobby.find_peer(user)
    if details is None:
        raise HTTPException(status_code=404, detail="Peer not found")
    return details


def create_app(settings: Optional[Settings] = None, *, users: Optional[CredentialStore] = None,
               lobby: Optional[Lobby] = None, issuer: Optional[TokenIssuer] = None) -> FastAPI:
    """Build the application; raises ConfigError before serving if the signing key is unusable."""
    settings = settings or Settings.from_env()
    issuer = issuer or TokenIssuer.from_settings(settings)
    users = users or CredentialStore()

    app = FastAPI(title="Lobby Chat API")
    app.state.settings = settings
    app.state.issuer = issuer
    app.state.users = users
    app.state.lobby = lobby or Lobby(history_limit=settings.history_limit)

    app.middleware("http")(AuthGate(issuer, users))
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(create_app(), host=os.getenv("HOST", "0.0.0.0"), port=port)
