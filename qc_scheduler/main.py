"""
QC Tracker API - Due-Date Scheduling & Compliance

Tracks recurring quality-control obligations for medical imaging equipment.

This API provides:
- Schedule generation for a frequency and start date
- Due / overdue task lists grouped by frequency tier for dashboards
- Per-machine schedule status and calendar views
- Local caching of submitted completions
- Degraded-mode operation when the remote completion store is unreachable
"""

import datetime as dt
import json
import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from qc_scheduler.config.config import Settings, get_settings
from qc_scheduler.config.logging_config import configure_logging, get_logger, log_request_context
from qc_scheduler.errors import CompletionSourceError, SchedulingError
from qc_scheduler.models.models import (
    CalendarResponse,
    CompletionResponse,
    CompletionSubmission,
    DueTasksResponse,
    ErrorResponse,
    HealthResponse,
    HealthStatus,
    ScheduleResponse,
    ScheduleStatusResponse,
    WorksheetScheduleStatus,
)
from qc_scheduler.models.schedule_models import Machine
from qc_scheduler.services.qc_service import QCScheduleService, close_qc_service, get_qc_service
from qc_scheduler.services.recurrence import period_bounds

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events with proper logging.
    """
    settings = get_settings()

    logger.info(
        "Application starting",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        config=settings.get_safe_config_dict(),
    )

    yield

    await close_qc_service()
    logger.info("Application shutting down")


def parse_completed_dates(raw: str | None) -> list[str]:
    """
    Parse the completedDates query value.

    Accepts a JSON array (as sent by the dashboard) or a comma-separated list.
    """
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return [part.strip() for part in raw.split(",") if part.strip()]
    if isinstance(value, list):
        return [str(v) for v in value]
    return [str(value)]


async def _require_machine(service: QCScheduleService, machine_id: str) -> Machine:
    machine = await service.find_machine(machine_id)
    if machine is None:
        raise HTTPException(status_code=404, detail=f"Machine not found: {machine_id}")
    return machine


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Optional settings override for testing.

    Returns:
        Configured FastAPI application.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        description=__doc__,
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request logging middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests with timing and context."""
        request_id = str(uuid4())
        start_time = time.perf_counter()

        log_request_context(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        response = await call_next(request)

        processing_time = int((time.perf_counter() - start_time) * 1000)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Processing-Time-Ms"] = str(processing_time)

        logger.info(
            "Request completed",
            status_code=response.status_code,
            processing_time_ms=processing_time,
        )

        return response

    # Exception handlers
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions with structured response."""
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=f"HTTP_{exc.status_code}",
                message=str(exc.detail),
                request_id=request.headers.get("X-Request-ID"),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(SchedulingError)
    async def scheduling_error_handler(request: Request, exc: SchedulingError):
        """Invalid schedule input; the caller must correct it."""
        logger.info("Rejected schedule input", error=str(exc), kind=type(exc).__name__)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ErrorResponse(
                error="INVALID_SCHEDULE_INPUT",
                message=str(exc),
                details={"kind": type(exc).__name__},
                request_id=request.headers.get("X-Request-ID"),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(CompletionSourceError)
    async def source_error_handler(request: Request, exc: CompletionSourceError):
        """Collaborator I/O failure that could not be degraded; safe to retry."""
        logger.warning("Upstream store unavailable", error=str(exc), kind=type(exc).__name__)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=ErrorResponse(
                error="UPSTREAM_UNAVAILABLE",
                message=str(exc),
                details={"kind": type(exc).__name__, "retryable": True},
                request_id=request.headers.get("X-Request-ID"),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.exception("Unhandled exception", error=str(exc))
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="INTERNAL_ERROR",
                message="An unexpected error occurred",
                request_id=request.headers.get("X-Request-ID"),
            ).model_dump(mode="json"),
        )

    register_routes(app)

    return app


def register_routes(app: FastAPI) -> None:
    """Register all API routes."""

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        settings = get_settings()
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "status": "operational",
            "docs": "/docs" if settings.debug else "disabled",
        }

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(
        settings: Settings = Depends(get_settings),
        service: QCScheduleService = Depends(get_qc_service),
    ) -> HealthResponse:
        """
        Health check endpoint for monitoring.

        Reports degraded when the remote completion store is unreachable;
        the API keeps serving local-only completion data in that state.
        """
        checks = {
            "api": True,
            "remote_store": await service.remote_available(),
        }

        if all(checks.values()):
            health = HealthStatus.HEALTHY
        elif checks["api"]:
            health = HealthStatus.DEGRADED
        else:
            health = HealthStatus.UNHEALTHY

        return HealthResponse(
            status=health,
            version=settings.app_version,
            environment=settings.environment,
            checks=checks,
        )

    @app.get("/api/v1/qc/schedule/generate", response_model=ScheduleResponse, tags=["Schedule"])
    async def generate_schedule(
        frequency: str = Query(..., description="daily, weekly, monthly, quarterly or annual"),
        start_date: str | None = Query(default=None, alias="startDate"),
        end_date: str | None = Query(default=None, alias="endDate"),
        completed_dates: str | None = Query(default=None, alias="completedDates"),
        service: QCScheduleService = Depends(get_qc_service),
    ) -> ScheduleResponse:
        """
        Generate the due-dates for a frequency and start date.

        **Example:** `?frequency=monthly&startDate=2025-07-19&endDate=2025-10-01`
        returns 2025-08-01, 2025-09-01 and 2025-10-01.

        `completedDates` (JSON array or comma-separated) is echoed back for
        cross-referencing; it does not change which dates are generated.
        """
        schedule = service.schedule(
            frequency,
            start_date,
            end_date=end_date,
            completed_dates=parse_completed_dates(completed_dates),
        )
        return ScheduleResponse(**schedule)

    @app.get("/api/v1/qc/due-tasks", response_model=DueTasksResponse, tags=["Tasks"])
    async def due_tasks(
        today: dt.date | None = Query(default=None, description="Reference date (defaults to today)"),
        service: QCScheduleService = Depends(get_qc_service),
    ) -> DueTasksResponse:
        """
        Get outstanding QC tasks across all machines, grouped by frequency tier.

        Each tier has an overdue list and a due-this-period list; a task never
        appears in both. `degraded` is true when completion status may be
        stale because the remote store could not be read.
        """
        result = await service.due_tasks(today)
        return DueTasksResponse.from_due_tasks(result)

    @app.get(
        "/api/v1/qc/machines/{machine_id}/schedule-status",
        response_model=ScheduleStatusResponse,
        tags=["Machines"],
    )
    async def schedule_status(
        machine_id: str,
        today: dt.date | None = Query(default=None, description="Reference date (defaults to today)"),
        service: QCScheduleService = Depends(get_qc_service),
    ) -> ScheduleStatusResponse:
        """Per-worksheet compliance summary for one machine."""
        machine = await _require_machine(service, machine_id)
        summaries, completions = await service.schedule_status(machine, today)
        worksheets = [WorksheetScheduleStatus.from_summary(s) for s in summaries]
        return ScheduleStatusResponse(
            machine_id=machine.machine_id,
            worksheets=worksheets,
            total_due=sum(s.due_to_date for s in summaries),
            total_completed=sum(s.completed for s in summaries),
            total_overdue=sum(s.overdue for s in summaries),
            degraded=completions.degraded,
            warnings=completions.warnings,
        )

    @app.get(
        "/api/v1/qc/machines/{machine_id}/calendar",
        response_model=CalendarResponse,
        tags=["Machines"],
    )
    async def machine_calendar(
        machine_id: str,
        start: dt.date | None = Query(default=None, description="Window start (defaults to first of month)"),
        end: dt.date | None = Query(default=None, description="Window end (defaults to end of month)"),
        today: dt.date | None = Query(default=None, description="Reference date (defaults to today)"),
        service: QCScheduleService = Depends(get_qc_service),
    ) -> CalendarResponse:
        """
        Classified due-dates for one machine inside a date window.

        Includes completed and upcoming dates, unlike the due-task dashboard.
        """
        today = today or dt.date.today()
        month_start, month_end = period_bounds("monthly", today)
        start = start or month_start
        end = end or month_end
        if end < start:
            raise HTTPException(status_code=400, detail="end must not be before start")

        machine = await _require_machine(service, machine_id)
        view = await service.calendar(machine, start, end, today)
        return CalendarResponse.from_view(view)

    @app.post(
        "/api/v1/qc/completions",
        response_model=CompletionResponse,
        status_code=status.HTTP_201_CREATED,
        tags=["Completions"],
    )
    async def submit_completion(
        submission: CompletionSubmission,
        service: QCScheduleService = Depends(get_qc_service),
    ) -> CompletionResponse:
        """
        Cache a submitted QC completion locally.

        The record counts towards compliance immediately and is superseded by
        the remote store's record once that one exists.
        """
        record = service.record_completion(submission.to_record())
        return CompletionResponse.from_record(record)


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "qc_scheduler.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
