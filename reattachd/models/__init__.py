from reattachd.models.device import AuthState, Device, SetupToken
from reattachd.models.push_endpoint import Environment, PushEndpoint, PushRegistry

__all__ = [
    "AuthState",
    "Device",
    "SetupToken",
    "Environment",
    "PushEndpoint",
    "PushRegistry",
]
