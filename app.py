"""
Flask surface for the screenshot crawler.
POST /start, POST /stop, GET /events (Server-Sent Events), POST /take_screenshot, GET /status
"""

import atexit
import queue
import threading

from flask import Flask, Response, jsonify, request, stream_with_context

from crawler.core import PORT, ConfigError, CrawlConfig, setup_logger
from crawler.engine import CrawlOrchestrator
from crawler.events import CrawlEvent, screenshot_data_url
from crawler.worker import PageWorker
from rendering.engine import RenderError, RendererFatalError

logger = setup_logger("crawler.app")

LOG_CONTEXT = {"context": "http"}

# Seconds between keep-alive comments on an idle event stream
KEEPALIVE_SECONDS = 15


class EventBroadcaster:
    """Fans every crawl event out to one queue per connected SSE client."""

    def __init__(self):
        self._clients = set()
        self._lock = threading.Lock()

    def subscribe(self) -> queue.Queue:
        client = queue.Queue()
        with self._lock:
            self._clients.add(client)
        return client

    def unsubscribe(self, client: queue.Queue) -> None:
        with self._lock:
            self._clients.discard(client)

    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def publish(self, event: CrawlEvent) -> None:
        with self._lock:
            clients = list(self._clients)
        for client in clients:
            client.put(event)


def create_app(engine=None, engine_factory=None) -> Flask:
    """
    Build the Flask app. The rendering engine is created on first use by
    engine_factory (Playwright by default) unless one is passed in, and is
    closed once at interpreter exit.
    """
    app = Flask(__name__)
    broadcaster = EventBroadcaster()
    engine_lock = threading.Lock()
    holder = {"engine": engine, "orchestrator": None}

    def get_engine():
        with engine_lock:
            if holder["engine"] is None:
                if engine_factory is not None:
                    holder["engine"] = engine_factory()
                else:
                    from rendering.playwright_engine import PlaywrightEngine
                    holder["engine"] = PlaywrightEngine().start()
                    atexit.register(holder["engine"].close)
            return holder["engine"]

    def get_orchestrator() -> CrawlOrchestrator:
        with engine_lock:
            orchestrator = holder["orchestrator"]
        if orchestrator is None:
            orchestrator = CrawlOrchestrator(get_engine(), listener=broadcaster.publish)
            with engine_lock:
                holder["orchestrator"] = holder["orchestrator"] or orchestrator
                orchestrator = holder["orchestrator"]
        return orchestrator

    def run_crawl(orchestrator: CrawlOrchestrator):
        try:
            orchestrator.run()
        except RendererFatalError as e:
            logger.error(f"crawl aborted: {e}", extra=LOG_CONTEXT)
            broadcaster.publish(CrawlEvent.error(None, str(e)))

    app.config["BROADCASTER"] = broadcaster
    app.config["GET_ORCHESTRATOR"] = get_orchestrator

    @app.after_request
    def allow_cors(response):
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        return response

    @app.route("/events")
    def events():
        client = broadcaster.subscribe()

        def stream():
            try:
                yield "event: connected\ndata: Connected to screenshot service\n\n"
                while True:
                    try:
                        event = client.get(timeout=KEEPALIVE_SECONDS)
                    except queue.Empty:
                        yield ": keep-alive\n\n"
                        continue
                    yield event.to_sse()
            finally:
                broadcaster.unsubscribe(client)

        return Response(
            stream_with_context(stream()),
            mimetype="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    @app.route("/start", methods=["POST"])
    def start():
        try:
            config = CrawlConfig.from_request(request.get_json(silent=True))
        except ConfigError as e:
            return jsonify({"error": str(e)}), 400

        orchestrator = get_orchestrator()
        if orchestrator.is_active():
            return jsonify({"error": "A crawl is already running"}), 409
        try:
            orchestrator.start(config)
        except ConfigError as e:
            return jsonify({"error": str(e)}), 400

        threading.Thread(target=run_crawl, args=(orchestrator,), daemon=True, name="CrawlSession").start()
        logger.info(f"crawl started for {config.url}", extra=LOG_CONTEXT)
        return jsonify({"message": "Crawling started"})

    @app.route("/stop", methods=["POST"])
    def stop():
        orchestrator = holder["orchestrator"]
        if orchestrator is not None:
            orchestrator.stop()
        return jsonify({"message": "Crawling stopped"})

    @app.route("/take_screenshot", methods=["POST"])
    def take_screenshot():
        body = request.get_json(silent=True)
        url = body.get("url") if isinstance(body, dict) else None
        if not url or not isinstance(url, str):
            return jsonify({"error": "URL is required"}), 400
        try:
            image = PageWorker(get_engine()).capture(url)
        except ConfigError as e:
            return jsonify({"error": str(e)}), 400
        except RenderError as e:
            logger.error(f"take_screenshot failed for {url}: {e}", extra=LOG_CONTEXT)
            return jsonify({"error": f"Failed to take screenshot of {url}: {e}"}), 500
        return jsonify({"data": screenshot_data_url(image)})

    @app.route("/status")
    def status():
        orchestrator = holder["orchestrator"]
        if orchestrator is None:
            return jsonify({"state": "IDLE", "clients": broadcaster.client_count()})
        payload = orchestrator.status()
        payload["clients"] = broadcaster.client_count()
        return jsonify(payload)

    return app


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=PORT, threaded=True)
