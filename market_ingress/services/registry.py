"""
Contract capability registry.

Lookups go through an in-memory LRU cache, then the durable store, and only
on a full miss probe the contract. Fully determined results are written
through to both layers. Results with an undetermined probe are kept in a
short-lived cache instead, so a flaky node never becomes a permanent
"unsupported".
"""

import asyncio
from typing import Any, Dict, Mapping, Optional, Tuple

from cachetools import LRUCache, TTLCache

from market_ingress.core.exceptions import NetworkNotFoundError
from market_ingress.core.logging import get_logger
from market_ingress.repositories.registry import RegistryStore

from .network import Capability, Network

logger = get_logger(__name__)

ERC721_INTERFACE_ID = "0x80ac58cd"
ERC721_METADATA_INTERFACE_ID = "0x5b5e139f"
ERC2981_INTERFACE_ID = "0x2a55205a"

RegistryKey = Tuple[str, str]


class ContractRegistry:
    """Cache-aside capability lookups keyed by (network, address)."""

    def __init__(
        self,
        store: RegistryStore,
        networks: Mapping[str, Network],
        extensions: Optional[Mapping[str, str]] = None,
        cache_size: int = 100,
        undetermined_ttl: float = 60.0,
    ):
        self.store = store
        self.networks = networks
        self.extensions = dict(extensions or {})
        self._cache: LRUCache = LRUCache(maxsize=cache_size)
        self._undetermined: TTLCache = TTLCache(maxsize=cache_size, ttl=undetermined_ttl)
        self._loading: Dict[RegistryKey, asyncio.Task] = {}
        self.logger = logger.bind(service="contract_registry")

    async def get(self, network: str, address: str) -> Dict[str, Any]:
        """Capabilities of a contract; concurrent misses share one probe set."""
        if network not in self.networks:
            raise NetworkNotFoundError(network)

        key = (network, address.lower())
        entry = self._cache.get(key) or self._undetermined.get(key)
        if entry is not None:
            return entry

        task = self._loading.get(key)
        if task is None:
            task = asyncio.create_task(self._load(key))
            self._loading[key] = task
            task.add_done_callback(lambda _: self._loading.pop(key, None))
        return await asyncio.shield(task)

    async def _load(self, key: RegistryKey) -> Dict[str, Any]:
        network, address = key

        flags = await self.store.get(network, address)
        if flags is not None:
            entry = self._entry(key, flags)
            self._cache[key] = entry
            return entry

        flags, determined = await self._probe(self.networks[network], address)
        entry = self._entry(key, flags)

        if determined:
            await self.store.upsert(network, address, flags)
            self._cache[key] = entry
        else:
            self._undetermined[key] = entry

        self.logger.info("Registry created", network=network, address=address, determined=determined, **flags)
        return entry

    async def _probe(self, network: Network, address: str) -> Tuple[Dict[str, Any], bool]:
        """Run the independent probes concurrently; returns flags and whether all were answered."""
        names = list(self.extensions)
        (is_erc721, metadata), erc2981, *extensions = await asyncio.gather(
            self._probe_erc721(network, address),
            network.probe(address, ERC2981_INTERFACE_ID),
            *(network.probe(address, self.extensions[name]) for name in names),
        )

        results = [is_erc721, metadata, erc2981, *extensions]
        flags = {
            "is_erc721": is_erc721.as_flag(),
            "supports_erc721_metadata": metadata.as_flag(),
            "supports_erc2981": erc2981.as_flag(),
            "extensions": {name: result.as_flag() for name, result in zip(names, extensions)},
        }
        return flags, all(result.determined for result in results)

    async def _probe_erc721(self, network: Network, address: str) -> Tuple[Capability, Capability]:
        """
        ERC-721 support: the metadata extension implies it. The base
        interface is only asked for when the metadata probe got an answer;
        a reverted call means no ERC-165 at all.
        """
        metadata = await network.probe(address, ERC721_METADATA_INTERFACE_ID)
        if metadata is Capability.SUPPORTED:
            return Capability.SUPPORTED, metadata
        if metadata is Capability.UNDETERMINED:
            return Capability.UNDETERMINED, metadata
        if metadata is Capability.REVERTED:
            return Capability.UNSUPPORTED, metadata
        return await network.probe(address, ERC721_INTERFACE_ID), metadata

    @staticmethod
    def _entry(key: RegistryKey, flags: Mapping[str, Any]) -> Dict[str, Any]:
        network, address = key
        return {"network": network, "address": address, **flags}

    def clear(self) -> None:
        self._cache.clear()
        self._undetermined.clear()
