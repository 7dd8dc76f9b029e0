"""Configuration management: profiles, filters, and TOML loading.

Usage:
    >>> from db_diff.config import load_diff_config, FilterConfig, DatabaseProfile
"""

from db_diff.config.loader import load_diff_config, merge_filter_config
from db_diff.config.models import DatabaseProfile, DiffConfig, FilterConfig

__all__ = [
    "load_diff_config",
    "merge_filter_config",
    "DatabaseProfile",
    "DiffConfig",
    "FilterConfig",
]
