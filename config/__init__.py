"""
Configuration Management Module
"""
from .settings import (
    Settings,
    get_settings,
    get_curation_settings,
    get_lifecycle_settings,
    get_llm_settings,
    get_progress_settings,
    get_youtube_settings,
)

__all__ = [
    "Settings",
    "get_settings",
    "get_curation_settings",
    "get_lifecycle_settings",
    "get_llm_settings",
    "get_progress_settings",
    "get_youtube_settings",
]
