"""Sync engine for pyxano - status, pull and push of XanoScript files."""

from .comparator import StatusComparator, classify
from .engine import SyncEngine
from .fetcher import FETCH_ORDER, FetchError, FetchResult, RemoteFetcher
from .merge import (
    GitMergeFile,
    MergeOutcome,
    MergeReport,
    MergeResult,
    ThreeWayMerger,
    has_conflict_markers,
    merge_into_local,
)
from .operations import SyncOperations
from .scanner import DirectoryScanner, LocalFile

__all__ = [
    "SyncEngine",
    "SyncOperations",
    "StatusComparator",
    "classify",
    "RemoteFetcher",
    "FetchResult",
    "FetchError",
    "FETCH_ORDER",
    "GitMergeFile",
    "MergeOutcome",
    "MergeReport",
    "MergeResult",
    "ThreeWayMerger",
    "has_conflict_markers",
    "merge_into_local",
    "DirectoryScanner",
    "LocalFile",
]
