import logging
import uuid
from typing import Any, Literal

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class QuizError(Exception):
    """Base error for the quiz engine. Every error carries a discriminating code and optional details."""

    code: str = "QUIZ_ERROR"

    def __init__(self, message: str, code: str | None = None, details: Any = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": self.details}


# Session state machine -----------------------------------------------------


class NotInitializedError(QuizError):
    code = "NOT_INITIALIZED"

    def __init__(self, message: str = "Test not initialized", details: Any = None):
        super().__init__(message, details=details)


class InvalidIndexError(QuizError):
    code = "INVALID_INDEX"

    def __init__(self, index: int, total: int):
        super().__init__("Invalid question index", details={"index": index, "total": total})


class NoSavedProgressError(QuizError):
    code = "NO_SAVED_PROGRESS"

    def __init__(self, message: str = "No saved progress found"):
        super().__init__(message)


# Storage -------------------------------------------------------------------

StorageOperation = Literal["read", "write", "delete"]


class StorageError(QuizError):
    code = "STORAGE_ERROR"

    def __init__(self, message: str, operation: StorageOperation, details: Any = None):
        super().__init__(message, details=details)
        self.operation = operation


class QuotaExceededError(StorageError):
    code = "QUOTA_EXCEEDED"

    def __init__(self, details: Any = None):
        super().__init__("Storage quota exceeded. Please clear some data and try again.", "write", details)


# Answer persistence ----------------------------------------------------------

AnswerPersistenceCode = Literal["NO_ACTIVE_TEST", "INVALID_QUESTION", "STORAGE_ERROR", "VALIDATION_ERROR"]


class AnswerPersistenceError(QuizError):
    def __init__(self, message: str, code: AnswerPersistenceCode, details: Any = None):
        super().__init__(message, code=code, details=details)


class NoActiveTestError(AnswerPersistenceError):
    def __init__(self, message: str = "No active test found"):
        super().__init__(message, "NO_ACTIVE_TEST")


# Question data ---------------------------------------------------------------

QuestionDataCode = Literal["LOAD_ERROR", "VALIDATION_ERROR", "CATEGORY_NOT_FOUND", "INSUFFICIENT_QUESTIONS"]


class QuestionDataError(QuizError):
    def __init__(self, message: str, code: QuestionDataCode, category: str | None = None, details: Any = None):
        super().__init__(message, code=code, details=details)
        self.category = category


class CategoryNotFoundError(QuestionDataError):
    def __init__(self, category: str):
        super().__init__(f"Category not found: {category}", "CATEGORY_NOT_FOUND", category)


class InsufficientQuestionsError(QuestionDataError):
    def __init__(self, category: str, requested: int, available: int):
        super().__init__(
            f"Insufficient questions in category {category}: requested {requested}, available {available}",
            "INSUFFICIENT_QUESTIONS",
            category,
            details={"requested_count": requested, "available_count": available},
        )


# HTTP envelope -----------------------------------------------------------------


def get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def error_response(
    request: Request,
    *,
    code: str,
    message: str,
    status_code: int,
    details=None,
) -> JSONResponse:
    payload = {
        "success": False,
        "error": {
            "code": code,
            "message": message,
            "request_id": get_request_id(request),
            "details": details,
        },
    }
    return JSONResponse(status_code=status_code, content=payload)


async def http_exception_handler(request: Request, exc: HTTPException):
    return error_response(
        request,
        code="http_error",
        message=str(exc.detail),
        status_code=exc.status_code,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return error_response(
        request,
        code="validation_error",
        message="Request validation failed",
        status_code=422,
        details=exc.errors(),
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception | request_id=%s", get_request_id(request), exc_info=exc)
    return error_response(
        request,
        code="internal_error",
        message="An internal error occurred.",
        status_code=500,
    )


async def request_id_middleware(request: Request, call_next):
    incoming = request.headers.get("x-request-id")
    request.state.request_id = incoming or str(uuid.uuid4())
    response = await call_next(request)
    response.headers["x-request-id"] = request.state.request_id
    return response
