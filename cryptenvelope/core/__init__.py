"""
Core module - Configuration, logging, serialization and the crypto layer.
"""

from cryptenvelope.core.config import CryptConfig
from cryptenvelope.core.logging import SecureLogFilter, configure_logging, get_secure_logger

__all__ = ["CryptConfig", "SecureLogFilter", "configure_logging", "get_secure_logger"]
