"""Configuration package."""

from .defaults import AppDefaults, Defaults, load_defaults_from_env

__all__ = ["AppDefaults", "Defaults", "load_defaults_from_env"]
