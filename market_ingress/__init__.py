"""
Marketplace ingress: indexer polling, idempotent persistence and live change subscriptions.
"""

__version__ = "0.1.0"
