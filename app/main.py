import asyncio
import uuid
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .api import auth, password_recovery
from .config.database import engine, Base
from .config.redis_config import build_token_store
from .config.settings import fuso_local
from .config.settings import settings
from .middleware.audit import AuditMiddleware
from .middleware.error_handler import register_exception_handlers
from .util.logger import logger

# Criar tabelas
Base.metadata.create_all(bind=engine)


def sweep_token_store(store) -> int:
    """Uma passada de limpeza; erro é logado e a próxima passada segue"""
    try:
        return store.cleanup_expired()
    except Exception as e:
        logger.error(f"Token store cleanup failed: {e}")
        return 0


async def cleanup_fallback_periodically(app: FastAPI):
    """Varredura do fallback em memória; o Redis expira sozinho"""
    while True:
        await asyncio.sleep(settings.FALLBACK_CLEANUP_INTERVAL_SECONDS)
        sweep_token_store(app.state.token_store)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.token_store = build_token_store()
    logger.info(f"Token store backend: {app.state.token_store.backend_name}")

    cleanup_task = asyncio.create_task(cleanup_fallback_periodically(app))
    try:
        yield
    finally:
        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            pass
        await app.state.token_store.close()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan
)

register_exception_handlers(app)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.middleware("http")(AuditMiddleware())


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    """Adiciona headers de segurança"""
    response = await call_next(request)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

    # Rate limit headers (se disponível)
    if hasattr(request.state, "rate_limit_remaining"):
        response.headers["X-RateLimit-Remaining"] = str(request.state.rate_limit_remaining)
        response.headers["X-RateLimit-Limit"] = str(request.state.rate_limit_limit)

    return response


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Adiciona ID único para cada request"""
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id

    return response


# Incluir rotas
app.include_router(auth.router)
app.include_router(auth.settings_router)
app.include_router(password_recovery.router)


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running"
    }


@app.get("/health")
async def health_check(request: Request):
    store = getattr(request.app.state, "token_store", None)
    return {
        "status": "healthy",
        "timestamp": datetime.now(fuso_local).isoformat(),
        "tokenStore": store.backend_name if store is not None else None
    }
