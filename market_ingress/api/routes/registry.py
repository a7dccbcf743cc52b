"""
Contract capability routes.
"""

from fastapi import APIRouter, Depends

from market_ingress.services.registry import ContractRegistry

from ..dependencies import get_registry
from ..schemas import SuccessResponse, create_success_response

router = APIRouter()


@router.get(
    "/{network}/{address}",
    response_model=SuccessResponse,
    summary="Get Contract Capabilities",
    description="ERC-165 capabilities of a contract; absent or null flags were not determined"
)
async def get_registry_entry(
    network: str,
    address: str,
    registry: ContractRegistry = Depends(get_registry),
):
    return create_success_response(await registry.get(network, address))
