from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from benchquiz.api.feedback import router as feedback_router
from benchquiz.api.health import router as health_router
from benchquiz.core.errors import (
    http_exception_handler,
    request_id_middleware,
    unhandled_exception_handler,
    validation_exception_handler,
)
from benchquiz.core.logging import DOMAIN_API, configure_logging, get_domain_logger
from benchquiz.core.settings import settings
from benchquiz.data.loader import QuestionLoader

configure_logging(settings.log_level)
logger = get_domain_logger(__name__, DOMAIN_API)

app = FastAPI(title="BenchQuiz API", version="0.1.0")
app.include_router(health_router)
app.include_router(feedback_router)
app.middleware("http")(request_id_middleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
# Starlette's HTTPException also covers routing 404/405.
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)


@app.on_event("startup")
async def on_startup():
    availability = QuestionLoader().check_data_availability()
    missing = [test_type for test_type, ok in availability.items() if not ok]
    if missing:
        logger.warning("Question data unavailable for: %s", ", ".join(missing))
    logger.info("BenchQuiz API started (env=%s)", settings.app_env)


def run() -> None:
    import uvicorn

    uvicorn.run("benchquiz.main:app", host=settings.app_host, port=settings.app_port, log_level=settings.log_level.lower())
