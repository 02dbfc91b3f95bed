"""Exception types raised across services and connectors.

Rate limiting is deliberately absent here: a cooldown is reported as a
structured response (is_rate_limited + remaining time), never raised.
"""


class ShopSyncError(Exception):
    """Base class for every error this service raises on purpose."""

    status_code = 500


class CatalogValidationError(ShopSyncError):
    """Bad input shape, rejected before any network or storage call."""

    status_code = 400


class KeystoneConfigError(ShopSyncError):
    """Keystone proxy URL or token missing where the environment requires them."""

    status_code = 503


class KeystoneAPIError(ShopSyncError):
    """The Keystone proxy answered with an error or could not be reached."""

    status_code = 502

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class SyncInProgressError(ShopSyncError):
    status_code = 409


class NotFoundError(ShopSyncError):
    status_code = 404
