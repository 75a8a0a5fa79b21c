"""Translate Anthropic API requests to OpenAI format."""

import logging
from typing import Dict, Any, List

from .errors import TranslationError

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 8192
DEFAULT_TEMPERATURE = 0.7
DEFAULT_TOP_P = 1


def translate_request(
    anthropic_request: Dict[str, Any],
    default_model: str = 'kimi-for-coding',
    stream: bool = False
) -> Dict[str, Any]:
    """
    Translate an Anthropic /v1/messages request to OpenAI /v1/chat/completions format.

    Args:
        anthropic_request: The Anthropic API request body
        default_model: Model used when the request does not name one
        stream: Whether to ask the backend for an event-stream

    Returns:
        OpenAI-compatible request body

    Raises:
        TranslationError: If the body is not a JSON object with a usable message list
    """
    if not isinstance(anthropic_request, dict):
        raise TranslationError(f"Expected a JSON object, got {type(anthropic_request).__name__}")

    messages = []

    # System prompt (Anthropic has it at top level, OpenAI has it as first message)
    system_prompt = anthropic_request.get('system')
    if system_prompt:
        messages.append({'role': 'system', 'content': _flatten_system(system_prompt)})

    raw_messages = anthropic_request.get('messages') or []
    if not isinstance(raw_messages, list):
        raise TranslationError("'messages' must be a list")

    for msg in raw_messages:
        messages.append(_translate_message(msg))

    # Falsy max_tokens (absent or 0) gets the default, sampling params only when absent/null
    temperature = anthropic_request.get('temperature')
    top_p = anthropic_request.get('top_p')

    openai_request = {
        'model': anthropic_request.get('model') or default_model,
        'messages': messages,
        'max_tokens': anthropic_request.get('max_tokens') or DEFAULT_MAX_TOKENS,
        'temperature': DEFAULT_TEMPERATURE if temperature is None else temperature,
        'top_p': DEFAULT_TOP_P if top_p is None else top_p,
        'stream': stream,
    }

    logger.debug(f"Model: {anthropic_request.get('model')} -> {openai_request['model']}")

    return openai_request


def _flatten_system(system_prompt: Any) -> str:
    """Join a system prompt (string or list of text segments) into one string."""
    if isinstance(system_prompt, str):
        return system_prompt

    if isinstance(system_prompt, list):
        return '\n'.join(
            segment.get('text', '') if isinstance(segment, dict) else str(segment)
            for segment in system_prompt
        )

    return str(system_prompt)


def _translate_message(msg: Any) -> Dict[str, str]:
    """Translate a single message; any role but assistant becomes user."""
    if not isinstance(msg, dict):
        raise TranslationError(f"Message must be an object, got {type(msg).__name__}")

    role = 'assistant' if msg.get('role') == 'assistant' else 'user'
    return {'role': role, 'content': _flatten_content(msg.get('content'))}


def _flatten_content(content: Any) -> str:
    """
    Flatten message content into a single string.

    Text blocks contribute their text. Other blocks (images) contribute their
    ``source.data`` field, which for most clients is empty.
    """
    if content is None:
        return ''

    if isinstance(content, str):
        return content

    if isinstance(content, list):
        parts: List[str] = []
        for block in content:
            if not isinstance(block, dict):
                continue
            source = block.get('source')
            data = source.get('data') if isinstance(source, dict) else None
            parts.append(block.get('text') or data or '')
        return ''.join(parts)

    return str(content)
