"""
Enrichment admin routes.
"""

from fastapi import APIRouter, Depends

from market_ingress.queue.enrich import EnrichQueue

from ..dependencies import get_enrich_queue
from ..schemas import EnqueueTokenRequest, SuccessResponse, create_success_response

router = APIRouter()


@router.post(
    "/enqueue",
    response_model=SuccessResponse,
    summary="Enqueue Enrichment",
    description="Request (re-)enrichment of a token"
)
async def enqueue(
    request: EnqueueTokenRequest,
    queue: EnrichQueue = Depends(get_enrich_queue),
):
    token = request.model_dump(mode="json", exclude_none=True)
    await queue.enqueue({"token": token})
    return create_success_response(message="OK")
