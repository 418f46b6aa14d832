import logging
import re

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel
from sqlalchemy.orm import Session

from cotacao.core.config import settings
from cotacao.core.security import AuthContext, operador_email
from cotacao.db.session import get_db

logger = logging.getLogger("cotacao.auth")

router = APIRouter(tags=["Auth"])

OP_LOGIN_PATH = "/api/op-login"
PIN_PATTERN = re.compile(r"[0-9]{4}")
OP_LOGIN_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


class LoginRequest(BaseModel):
    email: str
    senha: str


class RefreshRequest(BaseModel):
    refresh_token: str


class LoginResponse(BaseModel):
    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str
    role: str


def _sign_in(db: Session, email: str, password: str) -> dict:
    context = AuthContext(db)
    session = context.sign_in(email, password)
    if not session:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Usuario ou senha invalidos"
        )
    return {**session, "role": context.role}


@router.post("/auth/login", response_model=LoginResponse, summary="Login JSON (frontend)")
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    """
    Uso tipico via frontend:
    - POST /api/auth/login
    - body: {"email": "...", "senha": "..."}
    """
    return _sign_in(db, payload.email, payload.senha)


@router.post(
    "/auth/token",
    response_model=LoginResponse,
    summary="Login para Swagger (OAuth2PasswordBearer)",
)
def login_swagger(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    return _sign_in(db, form_data.username, form_data.password)


@router.post("/auth/refresh", response_model=LoginResponse)
def refresh(payload: RefreshRequest, db: Session = Depends(get_db)):
    context = AuthContext(db)
    session = context.refresh(payload.refresh_token)
    if not session:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Sessao expirada",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return {**session, "role": context.role}


def _op_login_error(code: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": code}, status_code=status_code, headers=OP_LOGIN_HEADERS)


@router.api_route(
    "/op-login",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    summary="Troca o PIN do operador por uma sessao",
)
async def op_login(request: Request, db: Session = Depends(get_db)):
    """
    O tablet envia {"pin": "1234"}; o PIN vira a conta <pin>@OPERADOR_DOMAIN,
    autenticada com a senha compartilhada dos operadores.
    """
    if request.method == "OPTIONS":
        return Response(status_code=status.HTTP_204_NO_CONTENT, headers=OP_LOGIN_HEADERS)
    if request.method != "POST":
        return _op_login_error("method_not_allowed", status.HTTP_405_METHOD_NOT_ALLOWED)

    try:
        body = await request.json()
    except ValueError:
        body = None
    pin = body.get("pin") if isinstance(body, dict) else None
    if not isinstance(pin, str) or not PIN_PATTERN.fullmatch(pin):
        return _op_login_error("pin_invalido", status.HTTP_400_BAD_REQUEST)

    context = AuthContext(db)
    # bcrypt e a consulta sao sincronos; fora do event loop
    session = await run_in_threadpool(context.sign_in, operador_email(pin), settings.OPERADOR_PASSWORD)
    if not session:
        logger.info("op-login recusado pin=%s", pin)
        return _op_login_error("credenciais_invalidas", status.HTTP_401_UNAUTHORIZED)

    return JSONResponse(
        {"session": session, "user": {"id": context.user.id, "email": context.user.email}},
        status_code=status.HTTP_200_OK,
        headers=OP_LOGIN_HEADERS,
    )
