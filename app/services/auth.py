import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from sqlmodel import Session, select
from passlib.context import CryptContext
from jose import jwt, JWTError
from pydantic import BaseModel

from app.models.user import User, UserRole
from app.core.config import settings
from app.core.errors import AuthenticationError, ConflictError

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


class AuthContext(BaseModel):
    """The caller as seen by the core: passed explicitly into every service call."""
    user_id: int
    email: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @classmethod
    def for_user(cls, user: User) -> "AuthContext":
        return cls(user_id=user.id, email=user.email, role=user.role)


class AuthService:
    def __init__(self, session: Session):
        self.session = session

    def get_password_hash(self, password: str) -> str:
        return pwd_context.hash(password)

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        return pwd_context.verify(plain_password, hashed_password)

    def create_access_token(self, user: User, expires_delta: Optional[timedelta] = None) -> str:
        if expires_delta:
            expire = datetime.now(timezone.utc) + expires_delta
        else:
            expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        to_encode = {
            "sub": str(user.id),
            "email": user.email,
            "role": user.role.value,
            "exp": expire,
        }
        return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

    def decode_token(self, token: str) -> int:
        """Return the user id carried by a valid token."""
        try:
            payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        except JWTError:
            raise AuthenticationError("Invalid token")
        subject = payload.get("sub")
        if subject is None or not str(subject).isdigit():
            raise AuthenticationError("Invalid token")
        return int(subject)

    def resolve_token(self, token: str) -> AuthContext:
        user = self.session.get(User, self.decode_token(token))
        if user is None:
            raise AuthenticationError("User not found")
        return AuthContext.for_user(user)

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.session.exec(select(User).where(User.email == email.strip().lower())).first()

    def create_user(self, email: str, password: str, name: str = None, role: UserRole = UserRole.USER) -> User:
        if self.get_user_by_email(email):
            raise ConflictError("Email already registered")

        user = User(
            email=email.strip().lower(),
            name=name,
            password_hash=self.get_password_hash(password),
            role=role,
        )
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        logger.info("Created %s user %s", user.role.value, user.email)
        return user

    def authenticate_user(self, email: str, password: str) -> User:
        user = self.get_user_by_email(email)
        # Same message for both cases
        if not user or not self.verify_password(password, user.password_hash):
            raise AuthenticationError("Invalid email or password")
        return user
