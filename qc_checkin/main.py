from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import ProgrammingError, OperationalError, IntegrityError
from qc_checkin.core.config import settings
from qc_checkin.core.logging import configure_logging
from qc_checkin.api.routes import health, checkins, session_settings, timers
from qc_checkin.schemas.common import ErrorResponse, DatabaseError
import logging

def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title=settings.APP_NAME)
    logger = logging.getLogger(__name__)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"], allow_credentials=True,
        allow_methods=["*"], allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(ProgrammingError)
    async def programming_error_handler(request: Request, exc: ProgrammingError):
        logger.error(f"Database programming error: {exc}")
        if "does not exist" in str(exc):
            body = DatabaseError(
                error="Database schema mismatch detected",
                detail="The application schema is out of sync with the database. Please contact support.",
                error_code="SCHEMA_MISMATCH",
            )
            return JSONResponse(status_code=503, content=body.model_dump())
        body = DatabaseError(error="Database query error", detail="There was an error executing the database query")
        return JSONResponse(status_code=500, content=body.model_dump())

    @app.exception_handler(OperationalError)
    async def operational_error_handler(request: Request, exc: OperationalError):
        logger.error(f"Database operational error: {exc}")
        body = DatabaseError(
            error="Database connection error",
            detail="Unable to connect to the database. Please try again later.",
            error_code="DATABASE_CONNECTION_ERROR",
        )
        return JSONResponse(status_code=503, content=body.model_dump())

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        logger.error(f"Database integrity error: {exc}")
        body = ErrorResponse(
            error="Data integrity violation",
            detail="The operation violates database constraints",
            error_code="DATA_INTEGRITY_ERROR",
        )
        return JSONResponse(status_code=400, content=body.model_dump())

    # routes
    app.include_router(health.router)
    app.include_router(checkins.router)
    app.include_router(timers.router)
    app.include_router(session_settings.router)
    return app

app = create_app()
