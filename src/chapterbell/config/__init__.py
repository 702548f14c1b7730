"""Configuration - process settings and per-source targets."""

from chapterbell.config.settings import Settings, get_settings
from chapterbell.config.targets import (
    ParseMode,
    Target,
    TargetConfigError,
    TargetKeys,
    TargetTags,
    load_targets,
)

__all__ = [
    "ParseMode",
    "Settings",
    "Target",
    "TargetConfigError",
    "TargetKeys",
    "TargetTags",
    "get_settings",
    "load_targets",
]
