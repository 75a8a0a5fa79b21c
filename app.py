#!/usr/bin/env python3
"""kimi-proxy - Anthropic Messages API front for an OpenAI-compatible backend."""

import os
import sys
import logging
from typing import Optional

from flask import Flask, Response, jsonify, request
from flask_cors import CORS
from dotenv import load_dotenv

from config import Config
from usage_tracker import UsageTracker
from backend_client import BackendClient
from handlers import proxy_bp, passthrough_bp

logger = logging.getLogger(__name__)

CORS_METHODS = ['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'OPTIONS']

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': ', '.join(CORS_METHODS),
    'Access-Control-Allow-Headers': '*',
}

MODEL_CREATED = 1700000000


def create_app(config: Optional[Config] = None, backend_client: Optional[BackendClient] = None) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    CORS(app, origins='*', methods=CORS_METHODS, allow_headers='*')

    if config is None:
        config = Config.from_env()

    app.config['PROXY_CONFIG'] = config
    app.config['BACKEND_CLIENT'] = backend_client or BackendClient(config)
    app.config['USAGE_TRACKER'] = UsageTracker()

    @app.before_request
    def answer_preflight():
        """Answer OPTIONS on any path without touching the backend."""
        if request.method == 'OPTIONS':
            return Response(status=200, headers=CORS_HEADERS)
        return None

    @app.route('/health', methods=['GET'])
    def health():
        return jsonify({'status': 'ok'})

    @app.route('/v1/models', methods=['GET'])
    @app.route('/models', methods=['GET'])
    def models():
        """Static list of the models the backend serves."""
        return jsonify({
            'object': 'list',
            'data': [
                {
                    'id': model_id,
                    'object': 'model',
                    'created': MODEL_CREATED,
                    'owned_by': config.model_owner,
                }
                for model_id in config.available_models
            ],
        })

    # Registered last: the pass-through catches every path not matched above
    app.register_blueprint(proxy_bp)
    app.register_blueprint(passthrough_bp)

    logger.info(f"kimi-proxy ready: {config.to_dict()}")

    return app


def configure_logging():
    """Configure root logging from LOG_LEVEL."""
    logging.basicConfig(
        level=os.getenv('LOG_LEVEL', 'INFO').upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )


def main():
    """Main entry point."""
    # Load environment variables from .env file
    load_dotenv()
    configure_logging()

    config = Config.from_env()
    app = create_app(config)

    # Print startup banner
    print()
    print("=" * 60)
    print("  kimi-proxy - Anthropic Messages API -> Kimi")
    print("=" * 60)
    print()
    print(f"  Proxy URL:  http://localhost:{config.port}/v1/messages")
    print(f"  Models:     http://localhost:{config.port}/v1/models")
    print(f"  Health:     http://localhost:{config.port}/health")
    print()
    print(f"  Target:     {config.target_endpoint}")
    print(f"  API key:    {'Configured' if config.is_api_key_configured() else 'Missing'}")
    print()
    print("  Point an Anthropic-format client at:")
    print()
    print(f"    export ANTHROPIC_BASE_URL='http://localhost:{config.port}'")
    print()
    print("=" * 60)
    print()

    try:
        app.run(
            host='0.0.0.0',
            port=config.port,
            debug=False,
            threaded=True
        )
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Server error: {e}")
        sys.exit(1)
    finally:
        app.config['USAGE_TRACKER'].log_summary()


if __name__ == '__main__':
    main()
