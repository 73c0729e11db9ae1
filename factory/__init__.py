"""Factory package - Dependency injection for backend-agnostic code"""

from .client_factory import create_timeseries_client

__all__ = [
    "create_timeseries_client",
]
