"""
API dependencies: access to the service container held by the app.
"""

from typing import TYPE_CHECKING

from fastapi import HTTPException, Request, status

from market_ingress.queue.enrich import EnrichQueue
from market_ingress.services.registry import ContractRegistry
from market_ingress.services.token import TokenService

if TYPE_CHECKING:
    from market_ingress.main import Services


def get_services(request: Request) -> "Services":
    services = getattr(request.app.state, "services", None)
    if services is None or not services.started:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Services not started")
    return services


def get_token_service(request: Request) -> TokenService:
    return get_services(request).tokens


def get_registry(request: Request) -> ContractRegistry:
    return get_services(request).registry


def get_enrich_queue(request: Request) -> EnrichQueue:
    return get_services(request).enrich_queue
