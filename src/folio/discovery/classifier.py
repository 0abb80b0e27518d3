"""Heuristic asset-class inference for newly discovered tokens.

Rules are an ordered list of (asset_class, predicate) pairs evaluated
first-match-wins on the upper-cased symbol and name. Order matters:
stablecoins before the broad "ST" staking test (USDT contains "ST").
"""

from collections.abc import Callable

TokenPredicate = Callable[[str, str], bool]

STABLECOIN_SYMBOLS = frozenset({"USDC", "USDT", "DAI", "BUSD"})

DEFAULT_TOKEN_CLASS = "utility"

TOKEN_CLASS_RULES: tuple[tuple[str, TokenPredicate], ...] = (
    ("stablecoin", lambda symbol, name: symbol in STABLECOIN_SYMBOLS),
    ("wrapped", lambda symbol, name: "WRAPPED" in name or symbol.startswith("W")),
    (
        "liquidity_pool",
        lambda symbol, name: "LIQUIDITY" in name or "LP" in name or "LP" in symbol,
    ),
    ("staking", lambda symbol, name: "STAKED" in name or "ST" in symbol),
    ("governance", lambda symbol, name: "GOVERNANCE" in name or "VOTE" in name),
)


def classify_token(symbol: str, name: str) -> str:
    """Return the first matching heuristic class, or "utility"."""
    symbol_upper = (symbol or "").upper()
    name_upper = (name or "").upper()
    for asset_class, predicate in TOKEN_CLASS_RULES:
        if predicate(symbol_upper, name_upper):
            return asset_class
    return DEFAULT_TOKEN_CLASS
