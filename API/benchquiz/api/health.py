from fastapi import APIRouter

from benchquiz.grading.timing import now_ms
from benchquiz.schemas.feedback import HealthCheckResponse

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health", response_model=HealthCheckResponse, response_model_exclude_none=True)
async def health():
    return HealthCheckResponse(status="ok", timestamp=now_ms())
