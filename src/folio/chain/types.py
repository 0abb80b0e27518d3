"""Chain definitions loaded from the chains JSON file.

File shape:
    {
      "chains": {
        "ethereum": {
          "chainId": 1,
          "rpcUrl": "...",
          "explorerApiUrl": "...",          # optional; no discovery without it
          "explorerApiKey": "...",          # optional
          "nativeCurrency": {"name": "Ether", "symbol": "ETH", "decimals": 18,
                             "pricingId": "ethereum"}
        }
      },
      "knownTokens": {
        "ethereum": [{"address": "0x...", "symbol": "USDC", "name": "USD Coin",
                      "decimals": 6, "pricingId": "usd-coin"}]
      }
    }
"""

import json
from dataclasses import dataclass, field
from pathlib import Path

from folio.exceptions import FolioError

ERC20_ABI: list[dict] = [
    {
        "constant": True,
        "inputs": [],
        "name": "symbol",
        "outputs": [{"name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "name",
        "outputs": [{"name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [{"name": "owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]


@dataclass(frozen=True)
class NativeCurrency:
    name: str
    symbol: str
    decimals: int = 18
    pricing_id: str | None = None


@dataclass(frozen=True)
class KnownToken:
    """Pre-verified token seeded into the registry."""

    address: str
    symbol: str
    name: str
    decimals: int
    pricing_id: str | None = None


@dataclass(frozen=True)
class ChainConfig:
    """Connection details for one EVM chain."""

    name: str
    chain_id: int
    rpc_url: str
    native_currency: NativeCurrency
    explorer_api_url: str | None = None
    explorer_api_key: str | None = None
    known_tokens: tuple[KnownToken, ...] = field(default_factory=tuple)


def parse_chain_configs(data: dict) -> dict[str, ChainConfig]:
    """Build ChainConfig objects from the decoded chains document."""
    known = data.get("knownTokens") or {}
    chains: dict[str, ChainConfig] = {}
    for name, raw in (data.get("chains") or {}).items():
        native = raw.get("nativeCurrency") or {}
        tokens = tuple(
            KnownToken(
                address=str(t["address"]).lower(),
                symbol=t["symbol"],
                name=t.get("name", t["symbol"]),
                decimals=int(t.get("decimals", 18)),
                pricing_id=t.get("pricingId") or t.get("coingeckoId"),
            )
            for t in known.get(name, [])
        )
        chains[name] = ChainConfig(
            name=name,
            chain_id=int(raw["chainId"]),
            rpc_url=raw["rpcUrl"],
            native_currency=NativeCurrency(
                name=native.get("name", name),
                symbol=native.get("symbol", "ETH"),
                decimals=int(native.get("decimals", 18)),
                pricing_id=native.get("pricingId") or native.get("coingeckoId"),
            ),
            explorer_api_url=raw.get("explorerApiUrl") or None,
            explorer_api_key=raw.get("explorerApiKey") or None,
            known_tokens=tokens,
        )
    return chains


def load_chain_configs(path: str) -> dict[str, ChainConfig]:
    """Load chain definitions from a JSON file.

    Raises FolioError if the file is missing or malformed; a wallet scan
    without chain definitions cannot proceed.
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        return parse_chain_configs(data)
    except (OSError, ValueError, KeyError, TypeError) as e:
        raise FolioError(f"Invalid chains config {path}: {e}") from e
