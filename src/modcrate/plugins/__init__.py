"""Plugins: identity matching, install/uninstall pipelines, update loop guard."""

from .host import Session, invalidate_metadata_cache, load_loaded_plugins
from .installer import InstallError, InstallPipeline
from .loop_guard import UpdateLoopGuard
from .manifests import ManifestStore
from .matcher import MIN_MATCH_SCORE, find_best_match, match_all, score_match
from .models import (
    InstallManifest,
    InstallResult,
    LocalPlugin,
    MatchReport,
    MatchResult,
    UninstallResult,
    UninstallScope,
)
from .uninstaller import ProtectedOperationError, Uninstaller
from .updates import UpdateCandidate, UpdateCheck, UpdateService

__all__ = [
    "MIN_MATCH_SCORE",
    "InstallError",
    "InstallManifest",
    "InstallPipeline",
    "InstallResult",
    "LocalPlugin",
    "ManifestStore",
    "MatchReport",
    "MatchResult",
    "ProtectedOperationError",
    "Session",
    "UninstallResult",
    "UninstallScope",
    "Uninstaller",
    "UpdateCandidate",
    "UpdateCheck",
    "UpdateLoopGuard",
    "UpdateService",
    "find_best_match",
    "invalidate_metadata_cache",
    "load_loaded_plugins",
    "match_all",
    "score_match",
]
