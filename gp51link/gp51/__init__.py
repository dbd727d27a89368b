"""GP51 web API access."""

from gp51link.gp51.client import GP51Client, classify_cause, hash_password
from gp51link.gp51.protocol import (
    Device,
    DeviceGroup,
    GP51Response,
    LoginResponse,
    MonitorListResponse,
)

__all__ = [
    "GP51Client",
    "classify_cause",
    "hash_password",
    "Device",
    "DeviceGroup",
    "GP51Response",
    "LoginResponse",
    "MonitorListResponse",
]
