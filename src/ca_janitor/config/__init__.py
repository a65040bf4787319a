"""Configuration loading for ca-janitor."""
from __future__ import annotations

from ca_janitor.config.puppet import PuppetConfig, parse_text
from ca_janitor.config.settings import CASettings

__all__ = [
    "CASettings",
    "PuppetConfig",
    "parse_text",
]
