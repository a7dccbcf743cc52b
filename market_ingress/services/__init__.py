"""
Request-path services: capability registry, enrichment waiter and tokens.
"""

from .enrichment import EnrichmentWaiter
from .network import Capability, Network, build_networks
from .registry import ContractRegistry
from .token import TokenService

__all__ = [
    "EnrichmentWaiter",
    "Capability",
    "Network",
    "build_networks",
    "ContractRegistry",
    "TokenService",
]
