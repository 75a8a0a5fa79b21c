"""Errors generated by the proxy itself."""


class ProxyError(Exception):
    """Base class for errors generated by the proxy itself."""

    error_type = 'proxy_error'


class TranslationError(ProxyError):
    """Raised when a request body cannot be mapped onto the backend format."""


class BackendResponseError(ProxyError):
    """Raised when a successful backend response has a shape that cannot be translated."""
