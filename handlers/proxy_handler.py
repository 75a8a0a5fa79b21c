"""Anthropic API proxy handler - translates to OpenAI format."""

import time
import logging

import requests
from flask import Blueprint, Response, current_app, jsonify, request, stream_with_context

from backend_client import is_success
from translator import ProxyError, StreamTranslator, translate_request, translate_response

logger = logging.getLogger(__name__)

proxy_bp = Blueprint('proxy', __name__)

STREAM_HEADERS = {
    'Cache-Control': 'no-cache',
    'X-Accel-Buffering': 'no',
    'Connection': 'keep-alive'
}


def get_config():
    """Get config from Flask app context."""
    return current_app.config['PROXY_CONFIG']


def get_backend_client():
    """Get backend client from Flask app context."""
    return current_app.config['BACKEND_CLIENT']


def get_usage_tracker():
    """Get usage tracker from Flask app context."""
    return current_app.config['USAGE_TRACKER']


def proxy_error(message: str, status: int = 500):
    """Build the proxy's own error envelope."""
    return jsonify({'error': {'message': message, 'type': ProxyError.error_type}}), status


def _elapsed_ms(start_time: float) -> int:
    return int((time.time() - start_time) * 1000)


@proxy_bp.route('/v1/messages', methods=['POST'])
@proxy_bp.route('/v1/v1/messages', methods=['POST'])
def messages():
    """
    Handle Anthropic /v1/messages requests.

    Translates to OpenAI format, forwards to the backend,
    translates the response back to Anthropic format.
    """
    start_time = time.time()
    config = get_config()
    tracker = get_usage_tracker()

    try:
        anthropic_request = request.get_json(force=True)
    except Exception as e:
        logger.error(f"Invalid JSON body: {e}")
        tracker.record_call(request.path, 500, _elapsed_ms(start_time))
        return proxy_error(f'Invalid JSON: {e}')

    try:
        is_streaming = isinstance(anthropic_request, dict) and anthropic_request.get('stream') is True
        openai_request = translate_request(anthropic_request, config.default_model, is_streaming)
    except ProxyError as e:
        logger.error(f"Translation error: {e}")
        tracker.record_call(request.path, 500, _elapsed_ms(start_time), anthropic_request)
        return proxy_error(str(e))

    original_model = anthropic_request.get('model') or config.default_model
    logger.info(f"-> {original_model} | msgs={len(openai_request['messages'])} | stream={is_streaming}")

    try:
        backend_response = get_backend_client().complete(openai_request, stream=is_streaming)
    except requests.exceptions.RequestException as e:
        logger.error(f"Backend request failed: {e}")
        tracker.record_call(request.path, 500, _elapsed_ms(start_time), anthropic_request)
        return proxy_error(str(e))

    if not is_success(backend_response):
        return _forward_failure(backend_response, anthropic_request, start_time, tracker)

    if is_streaming:
        return _handle_streaming(backend_response, original_model, anthropic_request, start_time, tracker)

    return _handle_non_streaming(backend_response, original_model, anthropic_request, start_time, tracker)


def _forward_failure(backend_response, anthropic_request, start_time, tracker):
    """Return a backend failure untranslated, with identical status and body bytes."""
    try:
        body = backend_response.content
    finally:
        backend_response.close()

    tracker.record_call(request.path, backend_response.status_code, _elapsed_ms(start_time), anthropic_request)

    return Response(
        body,
        status=backend_response.status_code,
        content_type=backend_response.headers.get('Content-Type', 'application/json')
    )


def _handle_non_streaming(backend_response, original_model, anthropic_request, start_time, tracker):
    """Handle non-streaming request/response."""
    try:
        openai_response = backend_response.json()
    except ValueError as e:
        logger.error(f"Invalid JSON from backend: {e}")
        tracker.record_call(request.path, 500, _elapsed_ms(start_time), anthropic_request)
        return proxy_error(f'Invalid JSON from backend: {e}')

    try:
        anthropic_response = translate_response(openai_response, original_model)
    except ProxyError as e:
        logger.error(f"Untranslatable backend response: {e}")
        tracker.record_call(request.path, 500, _elapsed_ms(start_time), anthropic_request)
        return proxy_error(str(e))

    usage = anthropic_response['usage']
    tracker.record_call(request.path, 200, _elapsed_ms(start_time), anthropic_request,
                        input_tokens=usage['input_tokens'],
                        output_tokens=usage['output_tokens'])

    logger.info(f"<- stop_reason={anthropic_response['stop_reason']} | "
                f"tokens={usage['input_tokens']}+{usage['output_tokens']}")

    return jsonify(anthropic_response), 200


def _handle_streaming(backend_response, original_model, anthropic_request, start_time, tracker):
    """Re-frame the backend event-stream as Anthropic events, one read at a time."""
    translator = StreamTranslator(original_model)
    path = request.path

    def generate():
        completed = False
        try:
            # Each read is fully yielded before the next one is requested
            for chunk in backend_response.iter_content(chunk_size=None):
                for event in translator.feed(chunk):
                    yield event.encode()

            for event in translator.flush():
                yield event.encode()
            completed = True

        except GeneratorExit:
            logger.warning("Client disconnected during stream")
        except requests.exceptions.RequestException as e:
            logger.error(f"Backend stream failed: {e}")
        finally:
            backend_response.close()

            usage = translator.get_usage()
            if not completed:
                logger.info("Stream ended before the backend finished")
            tracker.record_call(path, 200, _elapsed_ms(start_time), anthropic_request,
                                input_tokens=usage['input_tokens'],
                                output_tokens=usage['output_tokens'])

    response = Response(
        stream_with_context(generate()),
        content_type='text/event-stream',
        headers=STREAM_HEADERS
    )
    # Covers a caller that disconnects before the first event
    response.call_on_close(backend_response.close)
    return response
