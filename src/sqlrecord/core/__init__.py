# sqlrecord
# Copyright © 2025 Osvaldo J. Vega Rodríguez
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""Configuration and logging."""

from sqlrecord.core.config import DatabaseConfig
from sqlrecord.core.logging_config import get_log_directory, setup_logging

__all__ = ["DatabaseConfig", "setup_logging", "get_log_directory"]
