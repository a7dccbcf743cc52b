"""
Per-network JSON-RPC access for ERC-165 capability probes.
"""

import asyncio
from enum import Enum
from typing import Dict, Optional

import aiohttp
from web3 import AsyncWeb3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError, Web3Exception

from market_ingress.core.exceptions import ValidationError
from market_ingress.core.logging import get_logger

logger = get_logger(__name__)

ERC165_ABI = [
    {
        "inputs": [{"internalType": "bytes4", "name": "interfaceId", "type": "bytes4"}],
        "name": "supportsInterface",
        "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    }
]


class Capability(Enum):
    """
    Outcome of a capability probe.

    ``REVERTED`` is a definitive "no" that came from a failed call rather
    than an answer: the contract has no usable ``supportsInterface``.
    """
    SUPPORTED = "supported"
    UNSUPPORTED = "unsupported"
    REVERTED = "reverted"
    UNDETERMINED = "undetermined"

    @property
    def determined(self) -> bool:
        return self is not Capability.UNDETERMINED

    def as_flag(self) -> Optional[bool]:
        if self is Capability.UNDETERMINED:
            return None
        return self is Capability.SUPPORTED


class Network:
    """One chain reachable through a JSON-RPC provider."""

    def __init__(self, name: str, provider_url: str, timeout: float = 10.0):
        self.name = name
        self.provider_url = provider_url
        self.timeout = timeout
        self._web3: Optional[AsyncWeb3] = None
        self.logger = logger.bind(service="network", network=name)

    @property
    def web3(self) -> AsyncWeb3:
        if self._web3 is None:
            self._web3 = AsyncWeb3(
                AsyncWeb3.AsyncHTTPProvider(self.provider_url, request_kwargs={"timeout": self.timeout})
            )
        return self._web3

    async def close(self) -> None:
        if self._web3 is not None:
            await self._web3.provider.disconnect()
            self._web3 = None

    async def probe(self, address: str, interface_id: str) -> Capability:
        """
        Ask a contract whether it implements an interface (ERC-165).

        A boolean answer is definitive. A revert or an empty result (no
        contract at the address, or no ``supportsInterface``) is reported as
        ``REVERTED``. Transport failures leave the answer undetermined.
        """
        if not AsyncWeb3.is_address(address):
            raise ValidationError("Invalid contract address", {"address": address})

        contract = self.web3.eth.contract(address=AsyncWeb3.to_checksum_address(address), abi=ERC165_ABI)
        try:
            supported = await contract.functions.supportsInterface(bytes.fromhex(interface_id[2:])).call()
        except (ContractLogicError, BadFunctionCallOutput):
            return Capability.REVERTED
        except (Web3Exception, aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            self.logger.warning(
                "Capability probe failed",
                address=address,
                interface_id=interface_id,
                error=str(e)
            )
            return Capability.UNDETERMINED

        return Capability.SUPPORTED if supported else Capability.UNSUPPORTED


def build_networks(configs, timeout: float = 10.0) -> Dict[str, Network]:
    """Networks that have a JSON-RPC provider configured, keyed by name."""
    return {
        config.name: Network(config.name, config.provider_url, timeout)
        for config in configs
        if config.provider_url
    }
