"""
RESTful API exposing the streaming chat relay
"""

import logging
from typing import Dict, Optional, Any

from flask import Flask, request, jsonify, Response, stream_with_context
from flask_cors import CORS

from ssechat.core.validation import ValidationError, validate_chat_request
from ssechat.integrations.llm.base import LLMProvider
from ssechat.integrations.llm.ollama import OllamaProvider
from ssechat.streaming.relay import relay_stream

SSE_HEADERS = {
    'Cache-Control': 'no-cache',
    'Connection': 'keep-alive',
    'X-Accel-Buffering': 'no',
}


class RestInterface:
    """RESTful API interface using Flask"""

    def __init__(self, provider: Optional[LLMProvider] = None, config: Optional[Dict[str, Any]] = None):
        """
        Args:
            provider: Upstream backend; an OllamaProvider built from
                ``config['ollama']`` when omitted
            config: Flask configuration plus an optional ``ollama`` section
        """
        self.config = dict(config or {})
        self.logger = logging.getLogger(self.__class__.__name__)
        self.provider = provider or OllamaProvider(self.config.pop('ollama', {}))

        self.app = Flask(__name__)
        CORS(self.app)  # Enable CORS for web frontends

        self.app.config.update(self.config)

        self._setup_routes()

    def run(self, host: str = "0.0.0.0", port: int = 5000, debug: bool = False):
        """Run the Flask server"""
        self.app.run(host=host, port=port, debug=debug, threaded=True)

    def _setup_routes(self):
        """Setup all API routes"""

        @self.app.route('/api/health', methods=['GET'])
        def health_check():
            """Health check endpoint"""
            return jsonify({"status": "healthy", "service": "ssechat-api"})

        @self.app.route('/api/chat', methods=['POST'])
        def chat_route():
            """Stream a chat completion as Server-Sent Events"""
            body = request.get_json(silent=True)
            try:
                chat_request = validate_chat_request(body)
            except ValidationError as e:
                return jsonify({"error": str(e)}), 400

            self.logger.info(
                f"Relaying chat request: model={chat_request['model']}, "
                f"messages={len(chat_request['messages'])}"
            )
            return self.stream_response(chat_request)

    def stream_response(self, chat_request: Dict[str, Any]) -> Response:
        """Build the event-stream response for a validated chat request"""
        upstream = self.provider.stream_chat_raw(
            chat_request['messages'],
            model=chat_request['model'],
            options=chat_request.get('options'),
        )
        return Response(
            stream_with_context(relay_stream(upstream)),
            mimetype='text/event-stream',
            headers=SSE_HEADERS,
        )


def create_app(provider: Optional[LLMProvider] = None, config: Optional[Dict[str, Any]] = None) -> Flask:
    """Application factory"""
    return RestInterface(provider, config).app
