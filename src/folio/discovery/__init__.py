"""Token discovery -- registry, heuristic classification, metadata and balance resolution."""

from folio.discovery.balances import BalanceResolver
from folio.discovery.classifier import classify_token
from folio.discovery.engine import TokenDiscoveryEngine
from folio.discovery.registry import TokenRegistry

__all__ = ["BalanceResolver", "TokenDiscoveryEngine", "TokenRegistry", "classify_token"]
