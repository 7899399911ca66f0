"""
WebCompass Proxy - HTTP API
Flask-based REST API over the browser operations and in-memory stores
"""

import threading
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from flask import Flask, Response, request, jsonify, send_from_directory
from werkzeug.exceptions import HTTPException, NotFound as FileNotFound
from werkzeug.serving import make_server

import config
from browser.operations import ProxyOperations
from core.errors import InvalidInput, NotFound, ProxyError
from core.logger import log_info, log_warning, log_error
from storage.history import HistoryStore
from storage.scripts import ScriptLibrary


def _json_body() -> Dict[str, Any]:
    """Parsed JSON object from the request, or InvalidInput."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidInput("Request body must be a JSON object")
    return data


def _error_response(label: str, error: Exception) -> Tuple[Response, int]:
    """
    Map an exception to a JSON error body and HTTP status.

    Client errors (4xx) are logged as warnings, everything else as errors.
    Werkzeug HTTP errors (e.g. 413) go back to Flask's own handlers.
    """
    if isinstance(error, HTTPException):
        raise error

    if isinstance(error, ProxyError):
        status = error.http_status
        body: Dict[str, Any] = {
            "error": label,
            "type": error.__class__.__name__,
            "message": error.message,
        }
        if error.history_id is not None:
            body["historyId"] = error.history_id
    else:
        status = 500
        body = {"error": label, "type": "InternalError", "message": str(error)}

    if status < 500:
        log_warning(f"{label}: {body['message']}")
    else:
        log_error(f"{label}: {body['message']}")
    return jsonify(body), status


def create_app(
    operations: ProxyOperations,
    history: HistoryStore,
    scripts: ScriptLibrary,
    screenshots_dir: Path = config.SCREENSHOTS_DIR
) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = config.HTTP_MAX_CONTENT_LENGTH

    @app.after_request
    def security_headers(response: Response) -> Response:
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if request.path.startswith(f"{config.SCREENSHOTS_URL_PREFIX}/") and response.status_code == 200:
            response.headers["Cache-Control"] = f"public, max-age={config.SCREENSHOT_CACHE_MAX_AGE}"
        return response

    @app.errorhandler(413)
    def request_too_large(error):
        return jsonify({
            "error": "Request too large",
            "message": "Request body exceeds maximum size limit"
        }), 413

    @app.route("/health", methods=["GET"])
    def health():
        """Health check endpoint."""
        return jsonify({
            "status": "healthy",
            "service": "webcompass-proxy",
            "version": config.VERSION,
            "browser": operations.engine.status,
        })

    # =========================================================================
    # BROWSER OPERATIONS
    # =========================================================================

    @app.route("/api/proxy/navigate", methods=["POST"])
    def navigate():
        """
        Navigate to a URL and record it in history.

        Request body:
        {
            "url": "https://example.com"
        }
        """
        try:
            data = _json_body()
            result = operations.navigate(data.get("url"))
            return jsonify(result.to_dict())
        except Exception as e:
            return _error_response("Navigation failed", e)

    @app.route("/api/proxy/screenshot", methods=["POST"])
    def screenshot():
        """
        Capture a PNG of a page.

        Request body:
        {
            "url": "https://example.com",
            "fullPage": true,
            "width": 1920,
            "height": 1080,
            "historyId": 3          (optional: attach to a history record)
        }
        """
        try:
            data = _json_body()
            result = operations.screenshot(
                url=data.get("url"),
                full_page=data.get("fullPage", True),
                width=data.get("width"),
                height=data.get("height"),
                history_id=data.get("historyId"),
            )
            return jsonify(result.to_dict())
        except Exception as e:
            return _error_response("Screenshot failed", e)

    @app.route("/api/proxy/content", methods=["POST"])
    def content():
        """
        Extract elements matching a CSS selector, or the whole document.

        Request body:
        {
            "url": "https://example.com",
            "selector": "h1, h2"    (optional)
        }
        """
        try:
            data = _json_body()
            result = operations.extract(data.get("url"), data.get("selector"))
            return jsonify(result.to_dict())
        except Exception as e:
            return _error_response("Content extraction failed", e)

    @app.route("/api/proxy/inject", methods=["POST"])
    def inject():
        """
        Run a script inside a page.

        Request body:
        {
            "url": "https://example.com",
            "script": "return document.title;"
        }

        A script that throws still returns 200, with result {"error": ...}.
        """
        try:
            data = _json_body()
            result = operations.inject(data.get("url"), data.get("script"))
            return jsonify(result.to_dict())
        except Exception as e:
            return _error_response("Script injection failed", e)

    # =========================================================================
    # NAVIGATION HISTORY
    # =========================================================================

    @app.route("/api/proxy/history", methods=["GET"])
    def get_history():
        try:
            return jsonify([record.to_dict() for record in history.list()])
        except Exception as e:
            return _error_response("Failed to retrieve history", e)

    @app.route("/api/proxy/history", methods=["DELETE"])
    def clear_history():
        try:
            history.clear()
            return jsonify({"message": "History cleared successfully"})
        except Exception as e:
            return _error_response("Failed to clear history", e)

    @app.route("/api/proxy/history/<int:record_id>", methods=["DELETE"])
    def delete_history_record(record_id: int):
        try:
            history.remove(record_id)
            return jsonify({"message": "History record deleted successfully"})
        except Exception as e:
            return _error_response("Failed to delete history record", e)

    # =========================================================================
    # SCRIPT LIBRARY
    # =========================================================================

    @app.route("/api/scripts", methods=["GET"])
    def list_scripts():
        try:
            return jsonify([script.to_dict() for script in scripts.list()])
        except Exception as e:
            return _error_response("Failed to retrieve scripts", e)

    @app.route("/api/scripts", methods=["POST"])
    def create_script():
        """
        Save a script.

        Request body:
        {
            "name": "Page title",
            "description": "Optional description",
            "content": "return document.title;"
        }
        """
        try:
            data = _json_body()
            script = scripts.create(
                name=data.get("name"),
                content=data.get("content"),
                description=data.get("description"),
            )
            log_info(f"Saved script #{script.id} '{script.name}'", prefix="📜")
            return jsonify(script.to_dict())
        except Exception as e:
            return _error_response("Failed to create script", e)

    @app.route("/api/scripts/<int:script_id>", methods=["GET"])
    def get_script(script_id: int):
        try:
            script = scripts.get(script_id)
            if script is None:
                raise NotFound(f"Script {script_id} not found")
            return jsonify(script.to_dict())
        except Exception as e:
            return _error_response("Failed to retrieve script", e)

    @app.route("/api/scripts/<int:script_id>", methods=["PATCH"])
    def update_script(script_id: int):
        """Update any of name, description, content."""
        try:
            script = scripts.update(script_id, _json_body())
            if script is None:
                raise NotFound(f"Script {script_id} not found")
            return jsonify(script.to_dict())
        except Exception as e:
            return _error_response("Failed to update script", e)

    @app.route("/api/scripts/<int:script_id>", methods=["DELETE"])
    def delete_script(script_id: int):
        try:
            scripts.delete(script_id)
            return jsonify({"message": "Script deleted successfully"})
        except Exception as e:
            return _error_response("Failed to delete script", e)

    # =========================================================================
    # SCREENSHOT FILES
    # =========================================================================

    @app.route(f"{config.SCREENSHOTS_URL_PREFIX}/<path:filename>", methods=["GET"])
    def serve_screenshot(filename: str):
        try:
            return send_from_directory(Path(screenshots_dir).resolve(), filename)
        except FileNotFound:
            return jsonify({"error": "Screenshot not found"}), 404

    return app


class HTTPServer:
    """
    HTTP server manager.

    Runs the Flask app on a threaded WSGI server in a background thread.
    """

    def __init__(self, app: Flask, host: str = "0.0.0.0", port: int = 5000):
        self.host = host
        self.port = port
        self._app = app
        self._server = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start the HTTP server in a background thread."""
        # Suppress werkzeug's per-request logging
        import logging
        logging.getLogger("werkzeug").setLevel(logging.ERROR)

        self._server = make_server(self.host, self.port, self._app, threaded=True)
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            daemon=True,
            name="HTTPServer"
        )
        self._thread.start()

        log_info(f"HTTP API started on http://{self.host}:{self.port}", prefix="🌐")

    def stop(self) -> None:
        """Stop accepting requests and wait for the server thread."""
        if self._server is None:
            return
        self._server.shutdown()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
        self._server = None
        log_info("HTTP API stopped", prefix="🌐")


# Global HTTP server instance
_http_server: Optional[HTTPServer] = None


def get_http_server() -> Optional[HTTPServer]:
    """Get the global HTTP server instance."""
    return _http_server


def init_http_server(app: Flask, host: str = "0.0.0.0", port: int = 5000) -> HTTPServer:
    """Initialize the global HTTP server."""
    global _http_server
    _http_server = HTTPServer(app, host=host, port=port)
    return _http_server
