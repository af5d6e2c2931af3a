"""Configuration module for shopbooks."""

from shopbooks.config.ledger import LedgerConfig
from shopbooks.config.logging import configure_logging, get_logger
from shopbooks.config.seed_loader import SeedData, load_seed_data
from shopbooks.config.settings import FlatSettings, get_settings

__all__ = [
    "FlatSettings",
    "LedgerConfig",
    "SeedData",
    "get_settings",
    "configure_logging",
    "get_logger",
    "load_seed_data",
]
