"""Durable storage for the metrics window and server settings."""

from .json_config import ConfigStore, InMemoryConfig, JsonConfig

__all__ = ["ConfigStore", "InMemoryConfig", "JsonConfig"]
