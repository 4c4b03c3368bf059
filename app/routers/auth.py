from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from pydantic import BaseModel
from sqlmodel import Session

from app.core.config import settings
from app.core.errors import AuthenticationError, AuthorizationError
from app.db.session import get_session
from app.models.user import UserRole
from app.services.auth import AuthContext, AuthService

router = APIRouter()

oauth2_scheme_optional = OAuth2PasswordBearer(tokenUrl="api/auth/token", auto_error=False)


class Token(BaseModel):
    access_token: str
    token_type: str


class LoginRequest(BaseModel):
    email: str
    password: str


class UserInfo(BaseModel):
    id: int
    name: Optional[str] = None
    email: str
    role: UserRole


class LoginResponse(BaseModel):
    user: UserInfo
    token: str


class AuthCheck(BaseModel):
    userId: int
    email: str
    role: UserRole


def get_auth_service(session: Session = Depends(get_session)) -> AuthService:
    return AuthService(session)


def get_request_token(request: Request, token: Optional[str] = Depends(oauth2_scheme_optional)) -> Optional[str]:
    """Bearer header first, then the session cookie."""
    return token or request.cookies.get(settings.AUTH_COOKIE_NAME)


def get_auth_context_optional(
    token: Optional[str] = Depends(get_request_token),
    service: AuthService = Depends(get_auth_service),
) -> Optional[AuthContext]:
    """Caller identity, or None when anonymous. A stale or invalid token counts as anonymous."""
    if not token:
        return None
    try:
        return service.resolve_token(token)
    except AuthenticationError:
        return None


def get_auth_context(
    token: Optional[str] = Depends(get_request_token),
    service: AuthService = Depends(get_auth_service),
) -> AuthContext:
    if not token:
        raise AuthenticationError("Authentication required")
    return service.resolve_token(token)


def require_admin(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
    if not auth.is_admin:
        raise AuthorizationError("Admin privileges required")
    return auth


@router.post("", response_model=LoginResponse)
def login(data: LoginRequest, response: Response, service: AuthService = Depends(get_auth_service)):
    user = service.authenticate_user(data.email, data.password)
    token = service.create_access_token(user)
    response.set_cookie(
        key=settings.AUTH_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=settings.AUTH_COOKIE_SECURE,
        samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    return {
        "user": {"id": user.id, "name": user.name, "email": user.email, "role": user.role},
        "token": token,
    }


@router.post("/token", response_model=Token)
def login_for_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    service: AuthService = Depends(get_auth_service),
):
    user = service.authenticate_user(form_data.username, form_data.password)
    return {"access_token": service.create_access_token(user), "token_type": "bearer"}


@router.get("/me", response_model=AuthCheck)
def read_auth(auth: AuthContext = Depends(get_auth_context)):
    return {"userId": auth.user_id, "email": auth.email, "role": auth.role}


@router.post("/logout")
def logout(response: Response):
    response.delete_cookie(settings.AUTH_COOKIE_NAME)
    return {"success": True}
