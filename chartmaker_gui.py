#!/usr/bin/env python3
"""
Chart Maker GUI - Web-based chart editor for anime and video games
Serves the editor page, the two cover search proxies, and the per-session
chart workspace API used by the page.
"""

import logging
import argparse
import io
import os
import sys
import threading
import time
import uuid
from collections import OrderedDict
from typing import Callable, Dict, Optional

from colorama import init, Fore
from flask import Flask, render_template, jsonify, request, session, Response, send_file

import chartmaker
from chartmaker import ChartMakerConfig, ConfigError, UpstreamError
from anilist_client import AniListClient
from igdb_client import IGDBClient, TokenCache
from app.services import (
    ChartEditor, SearchModal, ChartExporter, ChartRenderer, PillowChartRenderer,
    UploadRejected, ExportFailed, ExportInProgress,
)

init(autoreset=True)

# Initialize logging early so client module logs are captured
log_level = os.getenv('CHARTMAKER_LOG_LEVEL', 'INFO')
chartmaker_logger = chartmaker.setup_logging(log_level)
gui_logger = logging.getLogger('chartmaker.gui')
try:
    os.makedirs('logs', exist_ok=True)
    fh = logging.FileHandler('logs/chartmaker_gui.log')
    fh.setFormatter(logging.Formatter('[%(asctime)s] %(levelname)s %(name)s: %(message)s'))
    fh.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    gui_logger.addHandler(fh)
except Exception:
    gui_logger.warning('Could not create log file handler')

# Bounds for the in-memory state kept per browser session
MAX_WORKSPACES = 500
WORKSPACE_IDLE_TTL = 6 * 60 * 60  # seconds
MAX_UPLOAD_BYTES = 16 * 1024 * 1024


class Workspace:
    """Everything one browser session edits: chart, search overlay, exporter."""

    def __init__(self, searchers: Dict, renderer: ChartRenderer) -> None:
        self.lock = threading.RLock()
        self.editor = ChartEditor()
        self.modal = SearchModal(self.editor, searchers)
        self.exporter = ChartExporter(renderer)
        self.last_used = 0.0

    def to_dict(self) -> Dict:
        return {
            'chart': self.editor.to_dict(),
            'modal': self.modal.to_dict(),
            'isExporting': self.exporter.is_exporting,
        }


class ChartMakerState:
    """App-wide collaborators plus the in-memory workspaces keyed by id.

    The registry is bounded: workspaces idle longer than *idle_ttl* seconds
    are dropped, and past *max_workspaces* the least recently used one goes.
    """

    def __init__(self, anime_client: AniListClient, game_client: IGDBClient,
                 renderer: ChartRenderer,
                 max_workspaces: int = MAX_WORKSPACES,
                 idle_ttl: float = WORKSPACE_IDLE_TTL,
                 clock: Callable[[], float] = time.time) -> None:
        self.anime_client = anime_client
        self.game_client = game_client
        self.renderer = renderer
        self.max_workspaces = max_workspaces
        self.idle_ttl = idle_ttl
        self._clock = clock
        # Least recently used first
        self.workspaces: 'OrderedDict[str, Workspace]' = OrderedDict()
        self.workspaces_lock = threading.Lock()

    @property
    def searchers(self) -> Dict:
        return {'anime': self.anime_client.search, 'game': self.game_client.search}

    def get_workspace(self, workspace_id: str) -> Workspace:
        now = self._clock()
        with self.workspaces_lock:
            self._evict_idle(now)
            ws = self.workspaces.get(workspace_id)
            if ws is None:
                while len(self.workspaces) >= self.max_workspaces:
                    evicted, _ = self.workspaces.popitem(last=False)
                    gui_logger.info('Evicted workspace %s (registry full)', evicted)
                ws = Workspace(self.searchers, self.renderer)
                self.workspaces[workspace_id] = ws
                gui_logger.debug('Created workspace %s', workspace_id)
            else:
                self.workspaces.move_to_end(workspace_id)
            ws.last_used = now
            return ws

    def _evict_idle(self, now: float) -> None:
        while self.workspaces:
            oldest_id, oldest = next(iter(self.workspaces.items()))
            if now - oldest.last_used <= self.idle_ttl:
                break
            del self.workspaces[oldest_id]
            gui_logger.info('Evicted idle workspace %s', oldest_id)


def _bad_request(message: str):
    return jsonify({'error': message}), 400


def _json_body() -> Dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def create_app(
    config: ChartMakerConfig,
    anime_client: Optional[AniListClient] = None,
    game_client: Optional[IGDBClient] = None,
    renderer: Optional[ChartRenderer] = None,
) -> Flask:
    """Build the Flask app from a validated *config*.

    Clients and the renderer can be passed in (tests do); otherwise they are
    built from *config*.

    Raises:
        ConfigError: *config* is missing the Twitch credentials or is
            otherwise invalid.
    """
    config.validate()
    gui_logger.info('Starting with config %s', config.to_dict())

    timeout = config.api_timeout_seconds
    state = ChartMakerState(
        anime_client or AniListClient(timeout=timeout),
        game_client or IGDBClient(
            config.twitch_client_id,
            config.twitch_client_secret,
            token_cache=TokenCache(),
            timeout=timeout,
        ),
        renderer or PillowChartRenderer(pixel_ratio=2, timeout=timeout),
    )

    app = Flask(__name__)
    app.secret_key = os.urandom(24)
    app.config['MAX_CONTENT_LENGTH'] = MAX_UPLOAD_BYTES
    app.extensions['chartmaker'] = state

    def current_workspace() -> Workspace:
        workspace_id = session.get('workspace_id')
        if not workspace_id:
            workspace_id = uuid.uuid4().hex
            session['workspace_id'] = workspace_id
        return state.get_workspace(workspace_id)

    @app.errorhandler(413)
    def handle_too_large(e):
        return jsonify({'error': f'Upload too large (limit {MAX_UPLOAD_BYTES // (1024 * 1024)} MB)'}), 413

    @app.errorhandler(UpstreamError)
    def handle_upstream_error(e: UpstreamError):
        gui_logger.warning('Upstream failure: %s', e.text)
        return Response(e.text, status=500, mimetype='text/plain')

    @app.route('/')
    def index():
        """Main page"""
        return render_template('index.html')

    # ===========================================================================================
    # Search proxies
    # ===========================================================================================

    @app.route('/api/search/anime')
    def api_search_anime():
        """Search AniList; ``{"results": []}`` for a blank query."""
        return jsonify({'results': state.anime_client.search(request.args.get('q', ''))})

    @app.route('/api/search/game')
    def api_search_game():
        """Search IGDB; ``{"results": []}`` for a blank query."""
        return jsonify({'results': state.game_client.search(request.args.get('q', ''))})

    # ===========================================================================================
    # Chart editing
    # ===========================================================================================

    @app.route('/api/chart', methods=['GET'])
    def api_chart_state():
        ws = current_workspace()
        with ws.lock:
            return jsonify(ws.to_dict())

    @app.route('/api/chart/title', methods=['POST'])
    def api_chart_title():
        data = _json_body()
        if not isinstance(data.get('title'), str):
            return _bad_request('title must be a string')
        ws = current_workspace()
        with ws.lock:
            ws.editor.set_title(data['title'])
            return jsonify(ws.to_dict())

    @app.route('/api/chart/select', methods=['POST'])
    def api_chart_select():
        data = _json_body()
        ws = current_workspace()
        with ws.lock:
            try:
                ws.editor.select(data.get('index'))
            except IndexError as e:
                return _bad_request(str(e))
            return jsonify(ws.to_dict())

    @app.route('/api/chart/cell', methods=['PATCH'])
    def api_chart_patch_cell():
        """Patch the selected cell's ``label`` and/or ``imageUrl``."""
        data = _json_body()
        patch = {}
        if 'label' in data:
            patch['label'] = data['label']
        if 'imageUrl' in data:
            patch['image_url'] = data['imageUrl']
        ws = current_workspace()
        with ws.lock:
            if ws.editor.selected_index is None:
                return _bad_request('No cell selected')
            ws.editor.update_selected(**patch)
            return jsonify(ws.to_dict())

    @app.route('/api/chart/cell/image', methods=['DELETE'])
    def api_chart_clear_image():
        ws = current_workspace()
        with ws.lock:
            ws.editor.clear_image()
            return jsonify(ws.to_dict())

    @app.route('/api/chart/cell/upload', methods=['POST'])
    def api_chart_upload():
        """Store an uploaded image on the selected cell as a data URL."""
        upload = request.files.get('file')
        if upload is None:
            return _bad_request('No file uploaded')
        ws = current_workspace()
        with ws.lock:
            try:
                ws.editor.handle_upload(upload.filename, upload.mimetype, upload.stream)
            except UploadRejected as e:
                return _bad_request(str(e))
            return jsonify(ws.to_dict())

    # ===========================================================================================
    # Search modal
    # ===========================================================================================

    @app.route('/api/modal/open', methods=['POST'])
    def api_modal_open():
        ws = current_workspace()
        with ws.lock:
            ws.modal.open()
            return jsonify(ws.to_dict())

    @app.route('/api/modal/close', methods=['POST'])
    def api_modal_close():
        ws = current_workspace()
        with ws.lock:
            ws.modal.close()
            return jsonify(ws.to_dict())

    @app.route('/api/modal/key', methods=['POST'])
    def api_modal_key():
        ws = current_workspace()
        with ws.lock:
            ws.modal.handle_key(str(_json_body().get('key', '')))
            return jsonify(ws.to_dict())

    @app.route('/api/modal/search', methods=['POST'])
    def api_modal_search():
        """Run a search inside the modal; failures land in ``modal.error``."""
        data = _json_body()
        ws = current_workspace()
        with ws.lock:
            if 'type' in data:
                try:
                    ws.modal.set_search_type(data['type'])
                except ValueError as e:
                    return _bad_request(str(e))
            if 'q' in data:
                q = data['q'] or ''
                if not isinstance(q, str):
                    return _bad_request('q must be a string')
                ws.modal.set_query(q)
            ws.modal.run_search()
            return jsonify(ws.to_dict())

    @app.route('/api/modal/pick', methods=['POST'])
    def api_modal_pick():
        data = _json_body()
        ws = current_workspace()
        with ws.lock:
            try:
                ws.modal.pick_index(data.get('index'))
            except IndexError as e:
                return _bad_request(str(e))
            return jsonify(ws.to_dict())

    # ===========================================================================================
    # Export
    # ===========================================================================================

    @app.route('/api/chart/export.png', methods=['GET'])
    def api_chart_export():
        """Download the title + grid as a PNG named after the chart title."""
        ws = current_workspace()
        with ws.lock:
            region = ws.editor.export_region()
        try:
            filename, png = ws.exporter.export(region)
        except ExportInProgress as e:
            return jsonify({'error': str(e)}), 409
        except ExportFailed as e:
            return jsonify({'error': str(e)}), 500
        gui_logger.info('Exported %s (%d bytes)', filename, len(png))
        # send_file adds an RFC 5987 filename* for non-ASCII titles
        return send_file(io.BytesIO(png), mimetype='image/png',
                         as_attachment=True, download_name=filename)

    return app


def main():
    """Main entry point for GUI"""
    parser = argparse.ArgumentParser(description='Chart Maker Web GUI')
    parser.add_argument('--config', default='config.json', help='Path to config file')
    parser.add_argument('--host', default='127.0.0.1', help='Interface to bind')
    parser.add_argument('--port', type=int, default=5000, help='Port to listen on')
    args = parser.parse_args()

    try:
        config = chartmaker.load_config(args.config)
        chartmaker.setup_logging(config.log_level)
        app = create_app(config)
    except ConfigError as e:
        print(f"{Fore.RED}Error: {e}")
        print(f"{Fore.YELLOW}Copy 'config_template.json' to 'config.json' or set "
              f"TWITCH_CLIENT_ID / TWITCH_CLIENT_SECRET.")
        sys.exit(1)

    print("\n" + "=" * 60)
    print("🎨 Chart Maker is starting...")
    print("=" * 60)
    print("\nOpen your browser and go to:")
    print(f"  http://{args.host}:{args.port}")
    print("\nPress Ctrl+C to stop the server")
    print("=" * 60 + "\n")

    try:
        app.run(host=args.host, port=args.port, debug=False, threaded=True)
    except KeyboardInterrupt:
        print("\n\n" + "=" * 60)
        print("🛑 Chart Maker stopped")
        print("=" * 60 + "\n")


if __name__ == "__main__":
    main()
