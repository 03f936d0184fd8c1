"""Capability map package."""

from capability_map.parser import (
    DEFAULT_INDENT_WIDTH,
    ROOT_KEYWORD,
    CapabilityFormat,
    ConfigError,
    LoaderReport,
    load_capability_map,
    parse_capability_text,
    parse_capability_yaml,
)
from capability_map.registry import CapabilityRegistry

__all__ = [
    "DEFAULT_INDENT_WIDTH",
    "ROOT_KEYWORD",
    "CapabilityFormat",
    "CapabilityRegistry",
    "ConfigError",
    "LoaderReport",
    "load_capability_map",
    "parse_capability_text",
    "parse_capability_yaml",
]
