"""Crypto holdings collection across wallets and chains."""

from folio.crypto.scanner import WalletScanner, WalletScanResult

__all__ = ["WalletScanResult", "WalletScanner"]
