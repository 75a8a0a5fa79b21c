"""Translate streaming responses between OpenAI and Anthropic SSE formats."""

import codecs
import json
import logging
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field

from .openai_to_anthropic import map_stop_reason, new_message_id, token_count

logger = logging.getLogger(__name__)

DONE_SENTINEL = '[DONE]'
DATA_PREFIX = 'data:'


@dataclass(frozen=True)
class TranslatedEvent:
    """One Anthropic stream event."""
    type: str
    payload: Dict[str, Any]

    def to_sse(self) -> str:
        return f"event: {self.type}\ndata: {json.dumps(self.payload)}\n\n"

    def encode(self) -> bytes:
        return self.to_sse().encode('utf-8')


@dataclass
class StreamState:
    """Track state during stream translation."""
    message_id: str = field(default_factory=new_message_id)
    model: str = 'kimi-for-coding'
    buffer: str = ''
    message_started: bool = False
    message_stopped: bool = False
    input_tokens: int = 0
    output_tokens: int = 0
    stop_reason: Optional[str] = None


class StreamTranslator:
    """
    Translates an OpenAI event-stream into Anthropic SSE events.

    Bytes are pushed in with feed() as they arrive from the backend; each call
    returns the events for every line completed by that chunk, in arrival
    order. flush() is called once the backend closes the connection.

    OpenAI format:
        data: {"choices":[{"index":0,"delta":{"content":"Hi"}}]}

        data: [DONE]

    Anthropic format:
        event: message_start
        data: {"type":"message_start","message":{...}}

        event: content_block_delta
        data: {"type":"content_block_delta","index":0,"delta":{"type":"text_delta","text":"Hi"}}

        event: message_delta
        data: {"type":"message_delta","delta":{"stop_reason":"end_turn",...},"usage":{...}}

        event: message_stop
        data: {"type":"message_stop"}
    """

    def __init__(self, original_model: str = 'kimi-for-coding', message_id: Optional[str] = None):
        self.state = StreamState(model=original_model)
        if message_id:
            self.state.message_id = message_id
        self._decoder = codecs.getincrementaldecoder('utf-8')(errors='replace')

    @property
    def buffer(self) -> str:
        """The unterminated tail of the stream seen so far."""
        return self.state.buffer

    def feed(self, chunk: bytes) -> List[TranslatedEvent]:
        """
        Consume one chunk of backend bytes.

        Args:
            chunk: Raw bytes exactly as read from the backend connection

        Returns:
            Events for every line completed by this chunk
        """
        self.state.buffer += self._decoder.decode(chunk)
        *lines, self.state.buffer = self.state.buffer.split('\n')

        events = []
        for line in lines:
            events.extend(self._translate_line(line))
        return events

    def flush(self) -> List[TranslatedEvent]:
        """
        Finish the stream after the backend closed the connection.

        The remaining partial line is classified once more, then the stream
        is terminated with a single message_stop.
        """
        remainder = self.state.buffer + self._decoder.decode(b'', final=True)
        self.state.buffer = ''

        events = []
        for line in remainder.split('\n'):
            events.extend(self._translate_line(line))

        if not self.state.message_stopped:
            events.append(self._emit_message_stop())

        return events

    def _translate_line(self, line: str) -> List[TranslatedEvent]:
        """Classify one complete line."""
        line = line.rstrip('\r')

        # Comments, event: fields and blank separators carry nothing
        if not line.startswith(DATA_PREFIX):
            return []

        payload = line[len(DATA_PREFIX):]
        if payload.startswith(' '):
            payload = payload[1:]

        if self.state.message_stopped:
            logger.debug(f"Ignoring data after end of stream: {payload[:100]}")
            return []

        if payload.strip() == DONE_SENTINEL:
            return [self._emit_message_stop()]

        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            logger.warning(f"Dropping malformed stream frame: {e}, frame: {payload[:200]}")
            return []

        if not isinstance(data, dict):
            logger.warning(f"Dropping non-object stream frame: {payload[:200]}")
            return []

        return self._translate_frame(data)

    def _translate_frame(self, data: Dict[str, Any]) -> List[TranslatedEvent]:
        """Translate one decoded OpenAI chunk into at most one Anthropic event."""
        usage = data.get('usage')
        if not isinstance(usage, dict):
            usage = None
        else:
            self.state.input_tokens = token_count(usage, 'prompt_tokens') or self.state.input_tokens
            self.state.output_tokens = token_count(usage, 'completion_tokens') or self.state.output_tokens

        choices = data.get('choices')
        if not choices:
            return []

        choice = choices[0] if isinstance(choices, list) else None
        delta = (choice.get('delta') or {}) if isinstance(choice, dict) else None
        if not isinstance(delta, dict):
            logger.warning(f"Dropping malformed stream frame: unreadable choices: {str(choices)[:200]}")
            return []

        text = delta.get('content')
        finish_reason = choice.get('finish_reason')
        index = choice.get('index', 0)
        if (not isinstance(text, (str, type(None)))
                or not isinstance(finish_reason, (str, type(None)))
                or not isinstance(index, int)):
            logger.warning(f"Dropping malformed stream frame: unexpected field types: {str(choice)[:200]}")
            return []

        if text:
            self.state.message_started = True
            return [self._emit_text_delta(text, index)]

        if not self.state.message_started and index == 0 and not finish_reason:
            self.state.message_started = True
            return [self._emit_message_start(data.get('id'))]

        if finish_reason:
            self.state.message_started = True
            self.state.stop_reason = map_stop_reason(finish_reason)
            return [self._emit_message_delta(usage)]

        return []

    def _emit_message_start(self, frame_id: Optional[str]) -> TranslatedEvent:
        """Emit message_start event."""
        message = {
            'id': frame_id or self.state.message_id,
            'type': 'message',
            'role': 'assistant',
            'model': self.state.model,
            'content': [],
            'stop_reason': None,
            'stop_sequence': None,
            'usage': {
                'input_tokens': 0,
                'output_tokens': 0
            }
        }

        return TranslatedEvent('message_start', {
            'type': 'message_start',
            'message': message
        })

    def _emit_text_delta(self, text: str, index: int) -> TranslatedEvent:
        """Emit content_block_delta event for text."""
        return TranslatedEvent('content_block_delta', {
            'type': 'content_block_delta',
            'index': index,
            'delta': {
                'type': 'text_delta',
                'text': text
            }
        })

    def _emit_message_delta(self, usage: Optional[Dict[str, Any]]) -> TranslatedEvent:
        """Emit message_delta with the stop reason and any usage on the frame."""
        usage = usage or {}
        usage_data = {'output_tokens': token_count(usage, 'completion_tokens') or 0}
        input_tokens = token_count(usage, 'prompt_tokens')
        if input_tokens is not None:
            usage_data['input_tokens'] = input_tokens

        return TranslatedEvent('message_delta', {
            'type': 'message_delta',
            'delta': {
                'stop_reason': self.state.stop_reason,
                'stop_sequence': None
            },
            'usage': usage_data
        })

    def _emit_message_stop(self) -> TranslatedEvent:
        """Emit the single terminal event of the stream."""
        self.state.message_stopped = True
        return TranslatedEvent('message_stop', {'type': 'message_stop'})

    def get_usage(self) -> Dict[str, int]:
        """Get accumulated token usage."""
        return {
            'input_tokens': self.state.input_tokens,
            'output_tokens': self.state.output_tokens
        }
