"""Canonical positions: normalization, classification, diffing and storage."""

from folio.portfolio.classifier import AssetClassifier, CategoryRule
from folio.portfolio.differ import SnapshotDiffer
from folio.portfolio.normalizer import PositionNormalizer
from folio.portfolio.snapshot_store import SnapshotStore

__all__ = [
    "AssetClassifier",
    "CategoryRule",
    "PositionNormalizer",
    "SnapshotDiffer",
    "SnapshotStore",
]
