import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from cotacao.api.v1.auth import OP_LOGIN_PATH, router as auth_router
from cotacao.api.v1.dashboard import router as dashboard_router
from cotacao.api.v1.gestor_desenhos import router as gestor_desenhos_router
from cotacao.api.v1.gestor_ops import router as gestor_ops_router
from cotacao.api.v1.me import router as me_router
from cotacao.api.v1.operador import router as operador_router
from cotacao.core.config import settings
from cotacao.db.init_db import ensure_schema, seed_initial_data
from cotacao.db.session import engine

if not logging.getLogger().handlers:
    logging.basicConfig(level=logging.INFO)

logger = logging.getLogger("cotacao")


class PathAwareCORSMiddleware(CORSMiddleware):
    """CORS restrito ao BACKEND_CORS_ORIGINS, exceto nas rotas que tratam o proprio CORS."""

    def __init__(self, app, exempt_paths=(), **kwargs):
        super().__init__(app, **kwargs)
        self.exempt_paths = set(exempt_paths)

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http" and scope["path"] in self.exempt_paths:
            await self.app(scope, receive, send)
            return
        await super().__call__(scope, receive, send)


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Cotacao - medicao de cotas por amostragem em OPs",
)

# /api/op-login responde o proprio preflight com Allow-Origin *
app.add_middleware(
    PathAwareCORSMiddleware,
    exempt_paths=[OP_LOGIN_PATH],
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    ensure_schema(engine)
    seed_initial_data()
    if settings.ENV.lower() == "production":
        if settings.SECRET_KEY == "dev-secret-change-me":
            logger.warning("SECRET_KEY esta usando valor padrao em producao.")
        if settings.OPERADOR_PASSWORD == "operador-dev":
            logger.warning("OPERADOR_PASSWORD esta usando valor padrao em producao.")
        if settings.SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
            logger.warning("SQLALCHEMY_DATABASE_URI aponta para SQLite em producao.")


app.include_router(auth_router, prefix="/api")
app.include_router(me_router, prefix="/api")
app.include_router(dashboard_router, prefix="/api")
app.include_router(gestor_desenhos_router, prefix="/api")
app.include_router(gestor_ops_router, prefix="/api")
app.include_router(operador_router, prefix="/api")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "request method=%s path=%s status=%s duration_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    return response


@app.get("/api/health")
def health():
    return {"status": "ok"}
