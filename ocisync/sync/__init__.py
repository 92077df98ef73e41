"""Sync rules, tag filtering and cleanup of sync targets"""
from .cleanup import CleanupEngine, CleanupReport, TagFailure
from .config import Config, ConfigCreds, ConfigSync, ConfigTagSet, SyncIndex
from .tags import SemverRange, filter_tag_list

__all__ = [
    "CleanupEngine",
    "CleanupReport",
    "Config",
    "ConfigCreds",
    "ConfigSync",
    "ConfigTagSet",
    "SemverRange",
    "SyncIndex",
    "TagFailure",
    "filter_tag_list",
]
