# web_server.py
import logging
import threading

from flask import Flask, jsonify

from .library import Library
from .status import SharedStatus

logger = logging.getLogger(__name__)


class StatusServer:
    def __init__(self, status: SharedStatus, library: Library = None):
        """Read-only JSON view of the loop status (and the card library, if given)."""
        self.status = status
        self.library = library
        self.app = Flask(__name__)
        self._setup_routes()

    def _setup_routes(self):
        """Set up all Flask routes. Only GET is exposed."""

        @self.app.route('/api/status', methods=['GET'])
        def get_status():
            return jsonify(self.status.snapshot().to_dict())

        @self.app.route('/api/library', methods=['GET'])
        def get_library():
            if self.library is None:
                return jsonify({'error': 'Library not available'}), 404
            cards = [
                {
                    'card_id': card_id,
                    'track': track,
                    'path': str(self.library.track_path(track)),
                }
                for card_id, track in sorted(self.library.items())
            ]
            return jsonify({
                'music_dir': str(self.library.media_root),
                'cards': cards,
            })

    def run(self, host='127.0.0.1', port=8080):
        """Run the Flask server in a separate daemon thread."""
        def run_server():
            self.app.run(host=host, port=port, debug=False, threaded=True, use_reloader=False)

        server_thread = threading.Thread(target=run_server, name="status-server", daemon=True)
        server_thread.start()
        logger.info("Status server started at http://%s:%s/api/status", host, port)
        return server_thread


def parse_bind_address(value: str, default_host: str = '127.0.0.1', default_port: int = 8080):
    """Splits 'host:port', ':port' or 'host' into a (host, port) tuple."""
    host, sep, port = value.rpartition(':')
    if not sep:
        return value or default_host, default_port
    if not port.isdigit():
        raise ValueError(f"invalid port in bind address {value!r}")
    return host or default_host, int(port)
