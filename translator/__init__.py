"""API translation layer between Anthropic and OpenAI formats."""

from .errors import BackendResponseError, ProxyError, TranslationError
from .anthropic_to_openai import translate_request
from .openai_to_anthropic import translate_response, map_stop_reason
from .streaming import StreamTranslator, TranslatedEvent

__all__ = [
    'ProxyError',
    'BackendResponseError',
    'TranslationError',
    'translate_request',
    'translate_response',
    'map_stop_reason',
    'StreamTranslator',
    'TranslatedEvent',
]
