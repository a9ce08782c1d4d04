import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from portal.config import get_settings

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/api/health")
def health_check():
    return {"status": "ok", "app": settings.APP_NAME}


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

# Trámites
from portal.routers import requisiciones  # noqa: E402

app.include_router(
    requisiciones.router,
    prefix="/api/requisiciones",
    tags=["Requisiciones"],
)

from portal.routers import reposiciones  # noqa: E402

app.include_router(
    reposiciones.router,
    prefix="/api/reposiciones",
    tags=["Reposiciones"],
)

# Notificaciones (preferencias, manuales, programadas)
from portal.routers import notificaciones  # noqa: E402

app.include_router(
    notificaciones.router,
    prefix="/api/notificaciones",
    tags=["Notificaciones"],
)

# Web Push subscriptions
from portal.routers import push  # noqa: E402

app.include_router(push.router, prefix="/api/push", tags=["Push"])

# Database-change webhook
from portal.routers import webhooks  # noqa: E402

app.include_router(webhooks.router, prefix="/api/webhooks", tags=["Webhooks"])

logger.info("%s started (log level %s)", settings.APP_NAME, settings.LOG_LEVEL)
