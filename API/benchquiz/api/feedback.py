import json

from fastapi import APIRouter, Request

from benchquiz.core.errors import error_response
from benchquiz.core.logging import DOMAIN_API, get_domain_logger
from benchquiz.schemas.feedback import FeedbackResponse

logger = get_domain_logger(__name__, DOMAIN_API)

router = APIRouter(prefix="/api", tags=["feedback"])


@router.post("/feedback", response_model=FeedbackResponse)
async def submit_feedback(request: Request):
    # Free-form body; anything that parses as JSON is accepted.
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return error_response(
            request,
            code="invalid_json",
            message="Request body must be valid JSON",
            status_code=400,
        )

    logger.info("Feedback received: %s", payload)
    return FeedbackResponse(message="Feedback received.")
