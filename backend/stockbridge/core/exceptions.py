"""
Error taxonomy for the Mercado Libre integration and the sync clients

Every error carries a human-readable message; API handlers map them to
HTTP status codes.
"""
from typing import Optional


class MercadoLibreError(Exception):
    """Base class for marketplace integration failures"""


class CredentialsMissing(MercadoLibreError):
    """No credential record is stored for the account"""

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Mercado Libre credentials missing for account '{account_id}'")


class RefreshFailed(MercadoLibreError):
    """The token endpoint rejected a refresh_token grant"""

    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__(f"Refresh failed: {status} {body}")


class TokenExchangeFailed(MercadoLibreError):
    """The token endpoint rejected an authorization_code grant"""

    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__(f"Token exchange failed: {status} {body}")


class AuthRejectedAfterRefresh(MercadoLibreError):
    """The marketplace returned 401 again after a forced refresh"""

    def __init__(self, status: int = 401, body: str = ""):
        self.status = status
        self.body = body
        super().__init__(f"Mercado Libre rejected the token after refresh: {status} {body}".rstrip())


class CredentialConflict(MercadoLibreError):
    """A versioned credential write lost a race and no winner could be read"""

    def __init__(self, account_id: str, expected_version: Optional[int]):
        self.account_id = account_id
        self.expected_version = expected_version
        super().__init__(
            f"Credential record for '{account_id}' changed concurrently (expected version {expected_version})"
        )


class LinkNotFound(MercadoLibreError):
    """The SKU has no marketplace listing mapped"""

    def __init__(self, sku: str):
        self.sku = sku
        super().__init__(f"No Mercado Libre link for SKU {sku}")


class MarketplaceRequestFailed(MercadoLibreError):
    """A marketplace write returned a non-success status other than 401"""

    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__(f"Mercado Libre request failed: {status} {body}")


class ProductNotFound(MercadoLibreError):
    def __init__(self, sku: str):
        self.sku = sku
        super().__init__(f"SKU {sku} does not exist in productos")


class MissingSize(MercadoLibreError):
    """A sized product has no size; publishing it would be penalized"""

    def __init__(self, sku: str, category: str):
        self.sku = sku
        self.category = category
        super().__init__(
            f'Product {sku} in category "{category}" has no size; it will not be published'
        )


class InvalidSyncRequest(MercadoLibreError):
    pass


class WooSyncError(Exception):
    """A woo-sync edge function call failed"""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)
