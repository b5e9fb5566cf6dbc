"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1 import audit, auth, cases, todos, users
from app.config import settings
from app.crud.case import case as case_crud
from app.crud.case import todo as todo_crud
from app.crud.user import user as user_crud
from app.database import close_db, get_db, init_db
from app.middleware.metrics import setup_metrics
from app.schemas.case import CaseResponse
from app.schemas.todo import TodoResponse
from app.schemas.user import UserResponse
from app.services.entity_lookup import entity_lookups, model_lookup

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def register_entity_lookups() -> None:
    """Prior-state lookups for the entity types the audit trail diffs against."""
    entity_lookups.register("cases", model_lookup(case_crud, CaseResponse))
    entity_lookups.register("todos", model_lookup(todo_crud, TodoResponse))
    entity_lookups.register("users", model_lookup(user_crud, UserResponse))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    await init_db()
    logger.info("Audit lookups registered for: %s", ", ".join(entity_lookups.registered_types()))
    yield
    # Shutdown
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_metrics(app)
register_entity_lookups()

# Include routers
app.include_router(auth.router, prefix=f"{settings.API_V1_PREFIX}/auth", tags=["auth"])
app.include_router(cases.router, prefix=f"{settings.API_V1_PREFIX}/cases", tags=["cases"])
app.include_router(todos.router, prefix=f"{settings.API_V1_PREFIX}/todos", tags=["todos"])
app.include_router(users.router, prefix=f"{settings.API_V1_PREFIX}/users", tags=["users"])
app.include_router(audit.router, prefix=f"{settings.API_V1_PREFIX}/audit", tags=["audit"])


@app.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    """Health check endpoint."""
    health_status = {"status": "ok", "checks": {"database": "unknown"}}
    try:
        await db.execute(select(1))
        health_status["checks"]["database"] = "ok"
    except Exception as e:
        logger.warning("Health check database probe failed: %s", e)
        health_status["checks"]["database"] = f"error: {str(e)}"
        health_status["status"] = "degraded"
    return health_status
