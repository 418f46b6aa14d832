import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import func
from sqlalchemy.orm import Session

from cotacao.core.config import settings
from cotacao.db import models
from cotacao.db.session import get_db

logger = logging.getLogger("cotacao.auth")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)

ROLE_GESTOR = "gestor"
ROLE_OPERADOR = "operador"
ROLES = {ROLE_GESTOR, ROLE_OPERADOR}

TOKEN_ACCESS = "access"
TOKEN_REFRESH = "refresh"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        return False


def get_password_hash(password: str) -> str:
    if not isinstance(password, str):
        raise ValueError("Senha invalida para hash: envie somente a senha em texto do usuario.")
    if len(password.encode("utf-8")) > 72:
        raise ValueError("Senha maior que 72 bytes em UTF-8.")
    return pwd_context.hash(password)


def operador_email(pin: str) -> str:
    return f"{pin}@{settings.OPERADOR_DOMAIN}"


def derive_role(user: Optional[models.User]) -> Optional[str]:
    """Papel explicito da conta ou, sem ele, pelo dominio reservado aos operadores."""
    if user is None or not user.email:
        return None
    if user.role in ROLES:
        return user.role
    if user.email.lower().endswith(f"@{settings.OPERADOR_DOMAIN.lower()}"):
        return ROLE_OPERADOR
    return ROLE_GESTOR


def _create_token(data: dict[str, Any], token_type: str, expires_delta: timedelta) -> str:
    to_encode = data.copy()
    to_encode.update({"exp": datetime.utcnow() + expires_delta, "type": token_type})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_access_token(data: dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    return _create_token(
        data,
        TOKEN_ACCESS,
        expires_delta or timedelta(hours=settings.ACCESS_TOKEN_EXPIRE_HOURS),
    )


def create_refresh_token(data: dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    return _create_token(
        data,
        TOKEN_REFRESH,
        expires_delta or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    )


def decode_token(token: str, expected_type: str = TOKEN_ACCESS) -> Optional[dict[str, Any]]:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != expected_type or not payload.get("sub"):
        return None
    return payload


def issue_session(user: models.User) -> dict[str, Any]:
    claims = {"sub": user.id, "email": user.email, "role": derive_role(user)}
    return {
        "access_token": create_access_token(claims),
        "refresh_token": create_refresh_token({"sub": user.id}),
        "expires_in": settings.ACCESS_TOKEN_EXPIRE_HOURS * 3600,
        "token_type": "bearer",
    }


def authenticate_user(db: Session, email: str, password: str) -> Optional[models.User]:
    normalized = (email or "").strip().lower()
    if not normalized or not password:
        return None
    user = db.query(models.User).filter(func.lower(models.User.email) == normalized).first()
    if not user or not verify_password(password, user.password_hash):
        logger.info("login recusado email=%s", normalized)
        return None
    if user.status != "active":
        logger.info("login recusado (inativo) email=%s", normalized)
        return None
    return user


class SessionStatus(str, Enum):
    UNINITIALIZED = "uninitialized"
    RESOLVING = "resolving"
    RESOLVED = "resolved"


class AuthContext:
    """
    Identidade da requisicao, passada explicitamente via Depends.
    uninitialized -> resolving -> resolved(usuario | nenhum), em resolve,
    sign_in, refresh ou sign_out.
    """

    def __init__(self, db: Session) -> None:
        self.db = db
        self.status = SessionStatus.UNINITIALIZED
        self.user: Optional[models.User] = None
        self.role: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return self.status is SessionStatus.RESOLVED and self.user is not None

    def _settle(self, user: Optional[models.User]) -> Optional[models.User]:
        self.user = user
        self.role = derive_role(user)
        self.status = SessionStatus.RESOLVED
        return user

    def _load_active(self, user_id: str) -> Optional[models.User]:
        return (
            self.db.query(models.User)
            .filter(models.User.id == user_id, models.User.status == "active")
            .first()
        )

    def resolve(self, token: Optional[str]) -> Optional[models.User]:
        self.status = SessionStatus.RESOLVING
        payload = decode_token(token, TOKEN_ACCESS) if token else None
        user = self._load_active(payload["sub"]) if payload else None
        return self._settle(user)

    def sign_in(self, email: str, password: str) -> Optional[dict[str, Any]]:
        self.status = SessionStatus.RESOLVING
        user = self._settle(authenticate_user(self.db, email, password))
        return issue_session(user) if user else None

    def refresh(self, refresh_token: str) -> Optional[dict[str, Any]]:
        self.status = SessionStatus.RESOLVING
        payload = decode_token(refresh_token, TOKEN_REFRESH) if refresh_token else None
        user = self._settle(self._load_active(payload["sub"]) if payload else None)
        return issue_session(user) if user else None

    def sign_out(self) -> None:
        self._settle(None)


def get_auth_context(
    token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)
) -> AuthContext:
    context = AuthContext(db)
    context.resolve(token)
    return context


def get_current_user(context: AuthContext = Depends(get_auth_context)) -> models.User:
    if not context.authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Credenciais invalidas",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return context.user


def require_role(role: str):
    def _dependency(
        context: AuthContext = Depends(get_auth_context),
        user: models.User = Depends(get_current_user),
    ) -> models.User:
        if context.role != role:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Perfil sem acesso a esta area")
        return user

    return _dependency
