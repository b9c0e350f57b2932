import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gestao_acoes.api.v1.actions import router as actions_router
from gestao_acoes.api.v1.admin import router as admin_router
from gestao_acoes.api.v1.auth import router as auth_router
from gestao_acoes.api.v1.clients import router as clients_router
from gestao_acoes.api.v1.companies import router as companies_router
from gestao_acoes.api.v1.dashboard import router as dashboard_router
from gestao_acoes.api.v1.me import router as me_router
from gestao_acoes.api.v1.notifications import router as notifications_router
from gestao_acoes.api.v1.responsibles import router as responsibles_router
from gestao_acoes.api.v1.users import router as users_router
from gestao_acoes.core.config import settings
from gestao_acoes.core.errors import DomainError
from gestao_acoes.db import models
from gestao_acoes.db.init_db import ensure_missing_columns, seed_initial_data
from gestao_acoes.db.session import engine

if not logging.getLogger().handlers:
    logging.basicConfig(level=logging.INFO)

logger = logging.getLogger("gestao_acoes")

app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Gestao de Acoes - acompanhamento de acoes, clientes e responsaveis",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    models.Base.metadata.create_all(bind=engine)
    ensure_missing_columns(engine)
    seed_initial_data()
    if settings.ENV.lower() == "production":
        if settings.SECRET_KEY == "dev-secret-change-me":
            logger.warning("SECRET_KEY esta usando valor padrao em producao.")
        if settings.SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
            logger.warning("SQLALCHEMY_DATABASE_URI aponta para SQLite em producao.")


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    if exc.status_code >= 500:
        logger.error("erro de backend path=%s: %s", request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.include_router(auth_router, prefix="/api")
app.include_router(me_router, prefix="/api")
app.include_router(companies_router, prefix="/api")
app.include_router(clients_router, prefix="/api")
app.include_router(responsibles_router, prefix="/api")
app.include_router(users_router, prefix="/api")
app.include_router(actions_router, prefix="/api")
app.include_router(notifications_router, prefix="/api")
app.include_router(dashboard_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


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
