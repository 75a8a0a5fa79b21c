"""Forward everything the proxy does not translate to the backend unchanged."""

import logging

import requests
from flask import Blueprint, Response, current_app, jsonify, request, stream_with_context

from backend_client import HOP_BY_HOP_HEADERS

logger = logging.getLogger(__name__)

passthrough_bp = Blueprint('passthrough', __name__)

PASSTHROUGH_METHODS = ['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'HEAD']


def backend_path(path: str) -> str:
    """Map an inbound path onto the backend base, which already ends in /v1."""
    if path == '/v1' or path.startswith('/v1/'):
        return path[len('/v1'):]
    return path


@passthrough_bp.route('/', defaults={'path': ''}, methods=PASSTHROUGH_METHODS)
@passthrough_bp.route('/<path:path>', methods=PASSTHROUGH_METHODS)
def passthrough(path):
    """Forward the request and stream the backend's answer back byte for byte."""
    client = current_app.config['BACKEND_CLIENT']

    try:
        backend_response = client.forward(
            request.method,
            backend_path(request.path),
            request.query_string.decode('latin-1'),
            request.headers.items(),
            request.get_data()
        )
    except requests.exceptions.RequestException as e:
        logger.error(f"Passthrough failed: {e}")
        return jsonify({'error': str(e)}), 500

    headers = [
        (name, value) for name, value in backend_response.raw.headers.items()
        if name.lower() not in HOP_BY_HOP_HEADERS
    ]

    def generate():
        try:
            # Raw bytes, not content-decoded, so Content-Encoding stays valid
            for chunk in backend_response.raw.stream(decode_content=False):
                yield chunk
        finally:
            backend_response.close()

    response = Response(
        stream_with_context(generate()),
        status=backend_response.status_code,
        headers=headers
    )
    response.call_on_close(backend_response.close)
    return response
