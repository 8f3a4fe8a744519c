"""
Core module - configuration and response formatting.
"""
from .config import Settings, get_settings
from .responses import ErrorCodes, success_response, error_response

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Responses
    "ErrorCodes",
    "success_response",
    "error_response",
]
