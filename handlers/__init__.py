"""Request handlers for kimi-proxy."""

from .proxy_handler import proxy_bp
from .passthrough import passthrough_bp

__all__ = ['proxy_bp', 'passthrough_bp']
