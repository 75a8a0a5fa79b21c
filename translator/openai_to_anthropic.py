"""Translate OpenAI API responses to Anthropic format."""

import logging
import uuid
from typing import Dict, Any, Optional

from .errors import BackendResponseError

logger = logging.getLogger(__name__)


def new_message_id() -> str:
    """Generate an Anthropic-style message ID."""
    return f"msg_{uuid.uuid4().hex[:24]}"


def map_stop_reason(finish_reason: Optional[str]) -> Optional[str]:
    """Translate OpenAI finish_reason to Anthropic stop_reason.

    Only a natural stop has a counterpart; everything else maps to None.
    """
    if finish_reason == 'stop':
        return 'end_turn'
    return None


def translate_usage(usage: Optional[Dict[str, Any]]) -> Dict[str, int]:
    """Map OpenAI token counters onto Anthropic usage fields."""
    if not isinstance(usage, dict):
        usage = {}
    return {
        'input_tokens': token_count(usage, 'prompt_tokens') or 0,
        'output_tokens': token_count(usage, 'completion_tokens') or 0
    }


def token_count(usage: Dict[str, Any], key: str) -> Optional[int]:
    """Read an integer token counter, ignoring anything that is not one."""
    value = usage.get(key)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def translate_response(
    openai_response: Dict[str, Any],
    original_model: str
) -> Dict[str, Any]:
    """
    Translate an OpenAI /v1/chat/completions response to Anthropic /v1/messages format.

    Args:
        openai_response: The OpenAI API response body
        original_model: The model name from the original request

    Returns:
        Anthropic-compatible response body
    """
    if not isinstance(openai_response, dict):
        raise BackendResponseError(f"Backend response is not an object: {type(openai_response).__name__}")

    choices = openai_response.get('choices') or []
    if not isinstance(choices, list):
        raise BackendResponseError("Backend response choices is not a list")
    if not choices:
        logger.warning("OpenAI response has no choices")

    choice = choices[0] if choices else {}
    message = (choice.get('message') or {}) if isinstance(choice, dict) else None
    if not isinstance(message, dict):
        raise BackendResponseError("Backend response choice has no readable message")

    text = message.get('content')
    if not isinstance(text, (str, type(None))):
        raise BackendResponseError("Backend response message content is not text")

    return {
        'id': new_message_id(),
        'type': 'message',
        'role': 'assistant',
        'model': original_model,
        'content': [
            {
                'type': 'text',
                'text': text or ''
            }
        ],
        'stop_reason': map_stop_reason(choice.get('finish_reason')),
        'stop_sequence': None,
        'usage': translate_usage(openai_response.get('usage'))
    }
