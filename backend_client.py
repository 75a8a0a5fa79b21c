"""Outbound calls to the OpenAI-compatible backend."""

import json
import logging
from typing import Any, Dict, Iterable, Optional

import requests

from config import Config

logger = logging.getLogger(__name__)

# Headers that describe a single hop and must not be forwarded
HOP_BY_HOP_HEADERS = frozenset({
    'connection',
    'keep-alive',
    'proxy-authenticate',
    'proxy-authorization',
    'te',
    'trailers',
    'transfer-encoding',
    'upgrade',
})

# Inbound headers replaced by the proxy
REPLACED_HEADERS = frozenset({'host', 'content-length', 'authorization', 'x-api-key'})


def is_success(response) -> bool:
    """Only 2xx responses have a known translation."""
    return 200 <= response.status_code < 300


class BackendClient:
    """Issues requests to the backend with the configured credential."""

    def __init__(self, config: Config, session: Optional[requests.Session] = None):
        self.config = config
        # Module-level requests calls use a fresh session per call, so nothing
        # is shared between server threads
        self.http = session if session is not None else requests

    @property
    def completions_url(self) -> str:
        return f"{self.config.target_endpoint}/chat/completions"

    def _auth_headers(self) -> Dict[str, str]:
        headers = {'User-Agent': self.config.user_agent}
        if self.config.is_api_key_configured():
            headers['Authorization'] = f'Bearer {self.config.target_api_key}'
        else:
            logger.warning("No authentication configured for target endpoint")
        return headers

    def complete(self, openai_request: Dict[str, Any], stream: bool = False) -> requests.Response:
        """
        Send a chat completion request.

        Args:
            openai_request: Translated OpenAI request body
            stream: Ask for an event-stream and read the body incrementally

        Returns:
            The backend response; the caller owns it and must close streamed responses
        """
        headers = self._auth_headers()
        headers['Content-Type'] = 'application/json'
        headers['Accept'] = 'text/event-stream' if stream else 'application/json'

        logger.info(f"[Kimi Request] {_truncate(json.dumps(openai_request), self.config.log_truncate)}")

        response = self.http.post(
            self.completions_url,
            json=openai_request,
            headers=headers,
            stream=stream,
            allow_redirects=False,
            timeout=self.config.request_timeout,
            verify=self.config.get_verify_ssl()
        )

        if not is_success(response):
            logger.error(f"[Kimi Error] {response.status_code}: "
                         f"{_truncate(response.text, self.config.log_truncate)}")
        elif not stream:
            logger.info(f"[Kimi Response] {_truncate(response.text, self.config.log_truncate)}")
        else:
            logger.info(f"[Kimi Response] {response.status_code} event-stream")

        return response

    def forward(
        self,
        method: str,
        path: str,
        query_string: str,
        headers: Iterable,
        body: bytes
    ) -> requests.Response:
        """
        Forward a request to the backend unchanged apart from the credential.

        Args:
            method: HTTP method of the inbound request
            path: Backend path relative to the configured endpoint
            query_string: Raw query string, without the leading '?'
            headers: Inbound (name, value) header pairs
            body: Raw inbound body

        Returns:
            The streamed backend response
        """
        url = f"{self.config.target_endpoint}{path}"
        if query_string:
            url = f"{url}?{query_string}"

        outbound = {
            name: value for name, value in headers
            if name.lower() not in HOP_BY_HOP_HEADERS and name.lower() not in REPLACED_HEADERS
        }
        outbound.update(self._auth_headers())

        logger.info(f"[Passthrough] {method} {url}")

        return self.http.request(
            method,
            url,
            headers=outbound,
            data=body,
            stream=True,
            allow_redirects=False,
            timeout=self.config.request_timeout,
            verify=self.config.get_verify_ssl()
        )


def _truncate(text: str, limit: int) -> str:
    """Truncate text for logging."""
    if len(text) <= limit:
        return text
    return text[:limit] + '... [truncated]'
