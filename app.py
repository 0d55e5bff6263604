"""
FastAPI application entry point for the touchpoint attribution service.

Endpoints:
- GET /attribution            detail (array of results) or summary (by type)
- GET /attribution/export     the same payloads as json, csv or xlsx
- POST /sessions              exchange credentials for a session token
- GET /health                 liveness
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

import config
from attribution import AttributionAnalyzer
from attribution_engine import AttributionEngine
from auth import AuthManager, User, create_default_organization_and_admin
from db import Database
from exceptions import (
    AttributionError,
    AuthenticationError,
    AuthorizationError,
    StoreUnavailableError,
    ValidationError
)
from exports import EXPORT_FORMATS, export_results, export_summary
from models import AttributionModel, DateRange
from repository import TouchpointRepository
from summary import build_summary
from utils import resolve_date_window, setup_logging

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

security = HTTPBearer(auto_error=False)


class LoginRequest(BaseModel):
    """Credentials for creating a session."""

    email: str = Field(..., max_length=320)
    password: str = Field(..., min_length=1)


class SessionResponse(BaseModel):
    """A new session token and the tenant it is scoped to."""

    token: str
    tenant_id: str = Field(..., serialization_alias="tenantId")
    role: str


# ============================================================================
# Dependencies
# ============================================================================

def get_auth_manager(request: Request) -> AuthManager:
    return request.app.state.auth


def get_analyzer(request: Request) -> AttributionAnalyzer:
    return request.app.state.analyzer


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    auth: AuthManager = Depends(get_auth_manager)
) -> User:
    """Resolve the bearer session token; 401 before any computation otherwise."""
    token = credentials.credentials if credentials else None
    return auth.require_session_user(token)


def parse_date_range(start_date: Optional[str], end_date: Optional[str]) -> DateRange:
    """Query-string dates to a DateRange. Raises InvalidDateRangeError (400)."""
    start, end = resolve_date_window(start_date, end_date, config.DEFAULT_LOOKBACK_DAYS)
    return DateRange(start=start, end=end)


def parse_model(model: Optional[str]) -> Optional[AttributionModel]:
    return AttributionModel.from_name(model) if model else None


async def run_attribution(
    analyzer: AttributionAnalyzer,
    user: User,
    summary: bool,
    start_date: Optional[str],
    end_date: Optional[str],
    model: Optional[str],
    owner_id: Optional[str],
    stage: Optional[str]
):
    """Validate the request, then compute either the summary or the detail results."""
    date_range = parse_date_range(start_date, end_date)
    selected_model = parse_model(model)

    results = await analyzer.analyze(user.tenant_id, date_range, owner_id=owner_id, stage=stage)

    if summary:
        return build_summary(results, date_range, selected_model)
    return results


# ============================================================================
# Application
# ============================================================================

def create_app(
    db_path: Optional[str] = None,
    engine: Optional[AttributionEngine] = None,
    seed_demo: bool = config.SEED_DEMO_DATA,
    configure_logging: bool = True
) -> FastAPI:
    """Build the API. Store and session resources are opened at startup."""
    db_path = db_path or config.DB_PATH

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if configure_logging:
            setup_logging(config.LOG_LEVEL, config.LOG_FILE)

        logger.info("Starting attribution API")

        db = Database(db_path)
        db.init_db()
        auth = AuthManager(db_path)

        if seed_demo:
            db.seed_data_if_empty()
            create_default_organization_and_admin(auth)

        app.state.db = db
        app.state.auth = auth
        app.state.analyzer = AttributionAnalyzer(TouchpointRepository(db), engine or AttributionEngine())

        logger.info("API startup complete")

        yield

        logger.info("Shutting down attribution API")
        auth.close()
        db.close()

    app = FastAPI(
        title="Touchpoint Attribution API",
        description="Multi-touch revenue attribution for closed opportunities",
        version=API_VERSION,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS.split(","),
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    register_routes(app)
    return app


def register_exception_handlers(app: FastAPI) -> None:
    """Map the exception hierarchy onto HTTP status codes."""

    def error_body(exc: AttributionError) -> dict:
        return {"error": exc.message, "details": exc.details}

    @app.exception_handler(AuthenticationError)
    async def handle_authentication(request: Request, exc: AuthenticationError):
        return JSONResponse(status_code=401, content=error_body(exc), headers={"WWW-Authenticate": "Bearer"})

    @app.exception_handler(AuthorizationError)
    async def handle_authorization(request: Request, exc: AuthorizationError):
        return JSONResponse(status_code=403, content=error_body(exc))

    @app.exception_handler(ValidationError)
    async def handle_validation(request: Request, exc: ValidationError):
        logger.info(f"Rejected {request.url.path}: {exc.message}")
        return JSONResponse(status_code=400, content=error_body(exc))

    @app.exception_handler(StoreUnavailableError)
    async def handle_store_unavailable(request: Request, exc: StoreUnavailableError):
        logger.error(f"Store unavailable for {request.url.path}: {exc.message}")
        return JSONResponse(status_code=503, content=error_body(exc))

    @app.exception_handler(AttributionError)
    async def handle_attribution_error(request: Request, exc: AttributionError):
        logger.error(f"Attribution request failed: {exc.message}")
        return JSONResponse(status_code=500, content=error_body(exc))


def register_routes(app: FastAPI) -> None:

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint for monitoring and load balancers."""
        return {"status": "healthy", "service": "Touchpoint Attribution API", "version": API_VERSION}

    @app.post("/sessions", tags=["Sessions"], response_model=SessionResponse)
    def create_session(body: LoginRequest, auth: AuthManager = Depends(get_auth_manager)):
        """Exchange email and password for a bearer session token."""
        user = auth.authenticate(body.email, body.password)
        if user is None:
            raise AuthenticationError("Invalid email or password")

        token = auth.create_session(user.id)
        logger.info(f"Session created for user {user.id} (tenant {user.tenant_id})")
        return SessionResponse(token=token, tenant_id=user.tenant_id, role=user.role.value)

    @app.delete("/sessions", tags=["Sessions"], status_code=204)
    def end_session(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
        user: User = Depends(get_current_user),
        auth: AuthManager = Depends(get_auth_manager)
    ):
        """Invalidate the caller's session."""
        auth.invalidate_session(credentials.credentials)
        return Response(status_code=204)

    @app.get("/attribution", tags=["Attribution"])
    async def get_attribution(
        summary: bool = Query(False, description="Return the by-type summary instead of per-opportunity results"),
        start_date: Optional[str] = Query(None, alias="startDate"),
        end_date: Optional[str] = Query(None, alias="endDate"),
        model: Optional[str] = Query(None, description="Restrict the summary to one model"),
        owner_id: Optional[str] = Query(None, alias="ownerId"),
        stage: Optional[str] = Query(None),
        user: User = Depends(get_current_user),
        analyzer: AttributionAnalyzer = Depends(get_analyzer)
    ):
        """
        Attribution for the caller's won opportunities closed in the window.

        Detail mode returns an array of AttributionResult; summary mode an
        object keyed by touchpoint type.
        """
        payload = await run_attribution(analyzer, user, summary, start_date, end_date, model, owner_id, stage)

        if summary:
            return JSONResponse(content=payload.to_dict())
        return JSONResponse(content=[result.to_dict() for result in payload])

    @app.get("/attribution/export", tags=["Attribution"])
    async def export_attribution(
        format: str = Query("json", pattern="^(json|csv|xlsx)$"),
        summary: bool = Query(False),
        start_date: Optional[str] = Query(None, alias="startDate"),
        end_date: Optional[str] = Query(None, alias="endDate"),
        model: Optional[str] = Query(None),
        owner_id: Optional[str] = Query(None, alias="ownerId"),
        stage: Optional[str] = Query(None),
        user: User = Depends(get_current_user),
        analyzer: AttributionAnalyzer = Depends(get_analyzer)
    ):
        """Download either payload as a file."""
        if not AuthManager.can_export_data(user):
            raise AuthorizationError("Export requires analyst access", required_role="analyst")

        payload = await run_attribution(analyzer, user, summary, start_date, end_date, model, owner_id, stage)

        if summary:
            content = export_summary(payload, format)
            filename = f"attribution_summary.{format}"
        else:
            content = export_results(payload, format)
            filename = f"attribution_detail.{format}"

        return Response(
            content=content,
            media_type=EXPORT_FORMATS[format],
            headers={"Content-Disposition": f'attachment; filename="{filename}"'}
        )


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app:app",
        host=config.API_HOST,
        port=config.API_PORT,
        log_level="info"
    )
