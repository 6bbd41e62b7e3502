class TrustError(Exception):
    """Base for credential failures. Reported to callers as a plain 401."""


class InvalidCredential(TrustError):
    pass


class ExpiredCredential(TrustError):
    pass


class UnknownDevice(TrustError):
    pass


class DeliveryError(Exception):
    """Base for push notification failures."""


class NoEndpointsRegistered(DeliveryError):
    def __init__(self):
        super().__init__("No device token registered")


class ProviderSetupError(DeliveryError):
    """The APNs channels could not be configured from the signing key."""


class TransientProviderError(DeliveryError):
    def __init__(self, reason: str, status_code: int | None = None):
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"APNs error ({status_code}): {reason}" if status_code else f"APNs error: {reason}")


class PermanentInvalidToken(DeliveryError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class TmuxError(Exception):
    """A tmux command could not be run or exited non-zero."""
