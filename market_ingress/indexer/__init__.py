"""
Order ingestion from the marketplace indexer.
"""

from .client import IndexerClient
from .ingress import IngressPartition, IngressService
from .notifier import ChangeNotifier
from .poller import BatchPoller
from .projector import build_order, build_token
from .types import DispatchResult, IngressStats, IngressStatus, UpsertResult
from .upserter import Upserter

__all__ = [
    "IndexerClient",
    "IngressPartition",
    "IngressService",
    "ChangeNotifier",
    "BatchPoller",
    "build_order",
    "build_token",
    "DispatchResult",
    "IngressStats",
    "IngressStatus",
    "UpsertResult",
    "Upserter",
]
