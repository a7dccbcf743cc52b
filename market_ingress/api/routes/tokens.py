"""
Token routes.
"""

import json
from typing import Optional

from fastapi import APIRouter, Depends, Query

from market_ingress.core.exceptions import NotFoundError, ValidationError
from market_ingress.services.token import TokenService

from ..dependencies import get_token_service
from ..schemas import SuccessResponse, create_success_response

router = APIRouter()


@router.get(
    "/{token_id}",
    response_model=SuccessResponse,
    summary="Get Token",
    description="A token with its metadata, waiting briefly for enrichment when it is missing"
)
async def get_token(
    token_id: str,
    network: Optional[str] = Query(None, description="Network to ask when the token is not stored"),
    service: TokenService = Depends(get_token_service),
):
    token = await service.get_token(token_id, network)
    if token is None:
        raise NotFoundError(f"Token not found: {token_id}", {"id": token_id})
    return create_success_response(token)


@router.get(
    "",
    response_model=SuccessResponse,
    summary="List Tokens",
    description="Tokens from the indexer merged with stored metadata"
)
async def list_tokens(
    where: Optional[str] = Query(None, description="Indexer token filter as a JSON object"),
    skip: int = Query(0, ge=0),
    first: int = Query(100, ge=1, le=1000),
    network: Optional[str] = Query(None),
    service: TokenService = Depends(get_token_service),
):
    filters = None
    if where:
        try:
            filters = json.loads(where)
        except ValueError as e:
            raise ValidationError("where must be a JSON object", {"error": str(e)}) from e
        if not isinstance(filters, dict):
            raise ValidationError("where must be a JSON object")

    tokens = await service.get_tokens(filters, skip, first, network)
    return create_success_response(tokens)
