"""Pytest configuration and fixtures for testing."""

import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
from requests.structures import CaseInsensitiveDict

# Make the top-level modules importable without installing
sys.path.insert(0, str(Path(__file__).parent.parent))

from app import create_app  # noqa: E402
from backend_client import BackendClient  # noqa: E402
from config import Config  # noqa: E402


class FakeRaw:
    """Stand-in for the urllib3 response behind a streamed requests.Response."""

    def __init__(self, headers: CaseInsensitiveDict, chunks: List[bytes]):
        self.headers = headers
        self._chunks = chunks

    def stream(self, amt=None, decode_content=None):
        yield from self._chunks


class FakeResponse:
    """Minimal requests.Response replacement fed from canned bytes."""

    def __init__(
        self,
        status_code: int = 200,
        body: bytes = b'',
        chunks: Optional[List[bytes]] = None,
        headers: Optional[Dict[str, str]] = None,
        fail_after: Optional[Exception] = None,
    ):
        self.status_code = status_code
        self.headers = CaseInsensitiveDict(headers or {'Content-Type': 'application/json'})
        self._chunks = chunks if chunks is not None else [body]
        self._fail_after = fail_after
        self.raw = FakeRaw(self.headers, self._chunks)
        self.closed = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def content(self) -> bytes:
        return b''.join(self._chunks)

    @property
    def text(self) -> str:
        return self.content.decode('utf-8')

    def json(self) -> Any:
        return json.loads(self.content)

    def iter_content(self, chunk_size=None):
        yield from self._chunks
        if self._fail_after is not None:
            raise self._fail_after

    def close(self):
        self.closed = True


class FakeSession:
    """Records outbound calls and replays queued responses or errors."""

    def __init__(self):
        self.calls: List[Dict[str, Any]] = []
        self.responses: List[Any] = []

    def queue(self, response):
        self.responses.append(response)
        return response

    def _next(self):
        outcome = self.responses.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def post(self, url, **kwargs):
        self.calls.append({'method': 'POST', 'url': url, **kwargs})
        return self._next()

    def request(self, method, url, **kwargs):
        self.calls.append({'method': method, 'url': url, **kwargs})
        return self._next()


def sse(*payloads) -> bytes:
    """Encode payloads as an OpenAI event-stream body."""
    lines = []
    for payload in payloads:
        data = payload if isinstance(payload, str) else json.dumps(payload)
        lines.append(f"data: {data}\n\n")
    return ''.join(lines).encode('utf-8')


def start_frame(frame_id: str = 'chatcmpl-1') -> Dict[str, Any]:
    return {'id': frame_id, 'choices': [{'index': 0, 'delta': {'role': 'assistant'}, 'finish_reason': None}]}


def text_frame(text: str, index: int = 0) -> Dict[str, Any]:
    return {'id': 'chatcmpl-1', 'choices': [{'index': index, 'delta': {'content': text}, 'finish_reason': None}]}


def finish_frame(reason: Optional[str] = 'stop', usage: Optional[Dict[str, int]] = None) -> Dict[str, Any]:
    frame = {'id': 'chatcmpl-1', 'choices': [{'index': 0, 'delta': {}, 'finish_reason': reason}]}
    if usage is not None:
        frame['usage'] = usage
    return frame


def parse_sse(body: bytes) -> List[Dict[str, Any]]:
    """Parse Anthropic SSE output into [{'event': ..., 'data': ...}]."""
    events = []
    for block in body.decode('utf-8').split('\n\n'):
        if not block.strip():
            continue
        event = {}
        for line in block.split('\n'):
            if line.startswith('event: '):
                event['event'] = line[len('event: '):]
            elif line.startswith('data: '):
                event['data'] = json.loads(line[len('data: '):])
        events.append(event)
    return events


@pytest.fixture
def config() -> Config:
    return Config(
        port=8320,
        target_endpoint='https://backend.test/v1',
        target_api_key='test-key',
        default_model='kimi-for-coding',
    )


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def backend(config, session) -> BackendClient:
    return BackendClient(config, session=session)


@pytest.fixture
def app(config, backend):
    app = create_app(config, backend)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()
