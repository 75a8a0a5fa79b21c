"""Configuration management for kimi-proxy."""

import os
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_TARGET_ENDPOINT = 'https://api.kimi.com/coding/v1'
DEFAULT_MODEL = 'kimi-for-coding'


@dataclass(frozen=True)
class Config:
    """Immutable proxy configuration, fixed at process start."""

    port: int = 8320
    target_endpoint: str = DEFAULT_TARGET_ENDPOINT
    target_api_key: Optional[str] = None
    default_model: str = DEFAULT_MODEL
    available_models: Tuple[str, ...] = (DEFAULT_MODEL, 'kimi-k2')
    user_agent: str = 'claude-code/2.0'
    log_truncate: int = 300
    request_timeout: Optional[float] = None
    skip_ssl_verify: bool = False
    model_owner: str = 'kimi'

    @classmethod
    def from_env(cls) -> 'Config':
        """Build configuration from environment variables."""
        timeout = os.getenv('REQUEST_TIMEOUT')
        models = _parse_list(os.getenv('AVAILABLE_MODELS', ''))

        config = cls(
            port=int(os.getenv('PROXY_PORT', '8320')),
            target_endpoint=os.getenv('TARGET_ENDPOINT', DEFAULT_TARGET_ENDPOINT).rstrip('/'),
            # Check TARGET_API_KEY, fall back to KIMI_API_KEY
            target_api_key=os.getenv('TARGET_API_KEY') or os.getenv('KIMI_API_KEY'),
            default_model=os.getenv('DEFAULT_MODEL', DEFAULT_MODEL),
            available_models=models or cls.available_models,
            user_agent=os.getenv('USER_AGENT', 'claude-code/2.0'),
            log_truncate=int(os.getenv('LOG_TRUNCATE', '300')),
            request_timeout=float(timeout) if timeout else None,
            skip_ssl_verify=os.getenv('SKIP_SSL_VERIFY', 'false').lower() == 'true',
        )

        if not config.is_api_key_configured():
            logger.warning("No TARGET_API_KEY set - backend calls will be unauthenticated")

        return config

    def is_api_key_configured(self) -> bool:
        """Check if a backend API key is configured."""
        return bool(self.target_api_key)

    def get_verify_ssl(self) -> bool:
        """Get SSL verification setting."""
        return not self.skip_ssl_verify

    def to_dict(self) -> dict:
        """Return configuration as dictionary (credential redacted)."""
        return {
            'port': self.port,
            'target_endpoint': self.target_endpoint,
            'default_model': self.default_model,
            'available_models': list(self.available_models),
            'api_key_configured': self.is_api_key_configured(),
            'request_timeout': self.request_timeout,
            'ssl_verify': self.get_verify_ssl(),
        }


def _parse_list(value: str) -> Tuple[str, ...]:
    """Parse a comma separated list (format: a,b,c)."""
    return tuple(item.strip() for item in value.split(',') if item.strip())
