import contextlib
import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from applymint.api.gemini import router as gemini_router
from applymint.api.sessions import router as sessions_router
from applymint.api.stream import router as stream_router
from applymint.db import create_db_engine, create_session_factory, init_db
from applymint.errors import ApiError
from applymint.grading import Grader, build_grader
from applymint.services.interview_flow import InterviewFlow
from applymint.services.interview_service import InterviewService
from applymint.services.question_generator import QuestionGenerator, build_question_generator

LOGGER = logging.getLogger(__name__)

DEFAULT_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]


def _cors_origins() -> list[str]:
    raw = os.getenv("CORS_ALLOW_ORIGINS", "")
    origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
    return origins or DEFAULT_ORIGINS


def _configure_logging() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(
    service: InterviewService | None = None,
    *,
    grader: Grader | None = None,
    question_generator: QuestionGenerator | None = None,
) -> FastAPI:
    load_dotenv()
    _configure_logging()

    engine = None
    if service is None:
        engine = create_db_engine()
        service = InterviewService(create_session_factory(engine))

    @contextlib.asynccontextmanager
    async def lifespan(app_instance: FastAPI):
        if engine is not None:
            init_db(engine)
        yield
        service.close()
        if engine is not None:
            engine.dispose()

    app = FastAPI(title="ApplyMint AI Interview API", lifespan=lifespan)
    app.state.interview_service = service
    app.state.interview_flow = InterviewFlow(
        service,
        grader or build_grader(),
        question_generator or build_question_generator(),
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
        if exc.status_code >= 500:
            LOGGER.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        LOGGER.info("Rejected %s %s: %s", request.method, request.url.path, exc.errors())
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Invalid request body"})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        LOGGER.error("Unhandled exception on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error"},
        )

    @app.get("/health")
    def health_check() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(sessions_router)
    app.include_router(stream_router)
    app.include_router(gemini_router)
    return app


app = create_app()
