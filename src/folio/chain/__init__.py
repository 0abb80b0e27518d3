"""Blockchain collaborator -- chain definitions and RPC/explorer clients."""

from folio.chain.client import ChainClient
from folio.chain.evm_client import EvmChainClient
from folio.chain.types import ChainConfig, KnownToken, NativeCurrency, load_chain_configs

__all__ = [
    "ChainClient",
    "ChainConfig",
    "EvmChainClient",
    "KnownToken",
    "NativeCurrency",
    "load_chain_configs",
]
