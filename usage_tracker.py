"""Per-call logging and running token totals for kimi-proxy."""

import copy
import json
import time
import logging
import threading
from typing import Any, Dict, Optional
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

MAX_LOGGED_TEXT = 500


@dataclass
class UsageStats:
    """Totals since the proxy started."""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_latency_ms: int = 0
    started_at: float = field(default_factory=time.time)

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 100.0
        return (self.successful_requests / self.total_requests) * 100

    @property
    def avg_latency_ms(self) -> float:
        if self.successful_requests == 0:
            return 0.0
        return self.total_latency_ms / self.successful_requests

    def to_dict(self) -> dict:
        return {
            'total_requests': self.total_requests,
            'successful_requests': self.successful_requests,
            'failed_requests': self.failed_requests,
            'success_rate': round(self.success_rate, 1),
            'total_input_tokens': self.total_input_tokens,
            'total_output_tokens': self.total_output_tokens,
            'total_tokens': self.total_input_tokens + self.total_output_tokens,
            'avg_latency_ms': round(self.avg_latency_ms, 0),
        }


class UsageTracker:
    """Logs each translated call and keeps token totals across server threads."""

    def __init__(self):
        self.usage = UsageStats()
        self._lock = threading.Lock()

    def record_call(
        self,
        path: str,
        status: int,
        duration_ms: int,
        request_data: Optional[Dict] = None,
        input_tokens: int = 0,
        output_tokens: int = 0
    ):
        """Log one call to the translated endpoint and add it to the totals."""
        with self._lock:
            self.usage.total_requests += 1
            if 200 <= status < 300:
                self.usage.successful_requests += 1
                self.usage.total_latency_ms += duration_ms
                self.usage.total_input_tokens += input_tokens
                self.usage.total_output_tokens += output_tokens
            else:
                self.usage.failed_requests += 1

        token_info = ""
        if input_tokens or output_tokens:
            token_info = f" | tokens: {input_tokens}+{output_tokens}"
        logger.info(f"POST {path} -> {status} ({duration_ms}ms){token_info}")

        if request_data is not None and logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Request body: {json.dumps(sanitize_request(request_data), default=str)}")

    def snapshot(self) -> Dict[str, Any]:
        """Current totals as a plain dict."""
        with self._lock:
            return self.usage.to_dict()

    def log_summary(self):
        stats = self.snapshot()
        uptime = int(time.time() - self.usage.started_at)
        logger.info(f"Served {stats['total_requests']} requests in {uptime}s "
                    f"({stats['failed_requests']} failed) | "
                    f"tokens: {stats['total_input_tokens']}+{stats['total_output_tokens']}")


def sanitize_request(data: Any) -> Any:
    """Copy a request body with long text cut down for logging."""
    if not isinstance(data, dict):
        return data

    sanitized = copy.deepcopy(data)

    for msg in sanitized.get('messages') or []:
        if isinstance(msg, dict):
            _truncate_content(msg)

    if isinstance(sanitized.get('system'), str):
        sanitized['system'] = _truncate(sanitized['system'])

    return sanitized


def _truncate_content(holder: Dict):
    content = holder.get('content')
    if isinstance(content, str):
        holder['content'] = _truncate(content)
    elif isinstance(content, list):
        for block in content:
            if isinstance(block, dict) and isinstance(block.get('text'), str):
                block['text'] = _truncate(block['text'])


def _truncate(text: str) -> str:
    if len(text) > MAX_LOGGED_TEXT:
        return text[:MAX_LOGGED_TEXT] + '... [truncated]'
    return text
