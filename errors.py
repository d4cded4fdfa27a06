"""
Error taxonomy for the storefront.

Every error carries a human readable ``reason`` and the HTTP status the API
answers with. Services raise these; ``main.py`` turns them into
``{"detail": reason}`` responses.
"""


class StorefrontError(Exception):
    status_code = 500

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ValidationError(StorefrontError):
    """Missing or malformed input. Nothing was written."""
    status_code = 400


class AuthenticationError(StorefrontError):
    status_code = 401


class NotFound(StorefrontError):
    status_code = 404


class InsufficientStock(StorefrontError):
    status_code = 409

    def __init__(self, product_name: str, available: int = None, requested: int = None):
        super().__init__(f"Insufficient stock for {product_name}")
        self.product_name = product_name
        self.available = available
        self.requested = requested


class StoreClosed(StorefrontError):
    status_code = 503

    def __init__(self, reason: str = "Store is currently under maintenance. Please try again later."):
        super().__init__(reason)


class InvalidSignature(StorefrontError):
    """The gateway signature did not match. The order stays unpaid."""
    status_code = 400

    def __init__(self, reason: str = "Invalid payment signature"):
        super().__init__(reason)


class ConfigurationError(StorefrontError):
    """Tenant or process configuration the operator has to fix."""
    status_code = 500


class MissingCredentials(ConfigurationError):
    pass


class SecretDecryptionError(ConfigurationError):
    pass


class PersistenceError(StorefrontError):
    status_code = 500


class PaymentGatewayError(StorefrontError):
    status_code = 502
