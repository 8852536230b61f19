"""
Process wiring for the websocket endpoint monitor: metrics HTTP server,
prober thread and command line entry point.
"""

import argparse
import signal
import sys
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from importlib.metadata import PackageNotFoundError, version
from urllib.parse import urlsplit

from loguru import logger

from .config import MonitorConfig, config_to_dict, load_config
from .counters import CounterPair
from .metrics import render
from .probe import Prober

METRICS_PATH = "/metrics"


class MetricsHTTPHandler(BaseHTTPRequestHandler):
    """
    HTTP handler serving the check counters on /metrics.
    """

    endpoint = None
    counters = None

    def do_GET(self):
        """Handle GET requests for the metrics endpoint."""
        if urlsplit(self.path).path == METRICS_PATH:
            self._serve_metrics()
        else:
            self._serve_404()

    def _serve_metrics(self):
        """Serve Prometheus metrics."""
        try:
            success, failure = self.counters.snapshot()
            body, content_type = render(self.endpoint, success, failure)
        except Exception as e:
            logger.error(f"Error generating metrics: {str(e)}")
            self.send_response(500)
            self.end_headers()
            self.wfile.write(f"Error generating metrics: {str(e)}".encode())
            return

        self.send_response(200)
        self.send_header('Content-Type', content_type)
        self.send_header('Content-Length', str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _serve_404(self):
        """Serve 404 response."""
        self.send_response(404)
        self.end_headers()
        self.wfile.write(b"Not Found")

    def log_message(self, format, *args):
        """Override to use loguru instead of default logging."""
        logger.debug(f"HTTP {format % args}")


def create_handler_class(endpoint: str, counters: CounterPair):
    """Create a handler class with the endpoint label and counters bound to it."""
    class BoundHandler(MetricsHTTPHandler):
        pass

    BoundHandler.endpoint = endpoint
    BoundHandler.counters = counters
    return BoundHandler


class MonitorApp:
    """
    Runs the prober and the metrics HTTP server around one set of counters.
    """

    def __init__(self, config: MonitorConfig, counters: CounterPair = None, prober: Prober = None):
        """
        Initialize the application.

        Args:
            config (MonitorConfig): Validated configuration
            counters (CounterPair): Shared counters, created if not given
            prober (Prober): Prober writing to the counters, created if not given
        """
        self.config = config
        self.counters = counters if counters is not None else CounterPair()
        self.prober = prober if prober is not None else Prober(config, self.counters)
        self._running = False
        self._http_server = None
        self._http_thread = None

    @property
    def server_address(self):
        """Address the metrics server is bound to, or None before start()."""
        if self._http_server is None:
            return None
        return self._http_server.server_address

    def start(self):
        """
        Start the application:
        1. Bind and start the metrics HTTP server
        2. Start the prober
        """
        try:
            self._running = True

            handler_class = create_handler_class(self.config.monitor_url, self.counters)
            self._http_server = ThreadingHTTPServer(
                (self.config.server_addr, self.config.server_port), handler_class
            )
            self._http_thread = threading.Thread(
                target=self._http_server.serve_forever, daemon=True, name="MetricsServer"
            )
            self._http_thread.start()
            host, port = self._http_server.server_address[:2]
            logger.info(f"Started HTTP server on {host}:{port} (metrics: {METRICS_PATH})")

            self.prober.start_probe()
            logger.info(
                f"Monitoring {self.config.monitor_url} every {self.config.monitor_interval}s"
            )

        except Exception as e:
            logger.error(f"Failed to start application: {str(e)}")
            self.stop()
            raise

    def stop(self):
        """
        Stop the prober and HTTP server.
        """
        if not self._running:
            return

        self._running = False
        logger.info("Stopping application...")

        if self._http_server:
            logger.info("Stopping HTTP server...")
            self._http_server.shutdown()
            self._http_server.server_close()
            if self._http_thread:
                self._http_thread.join(timeout=5)
                if self._http_thread.is_alive():
                    logger.warning("HTTP server thread did not stop gracefully")

        self.prober.stop_probe()
        logger.info("Application stopped")

    def is_running(self):
        """
        Check if the application is running.

        Returns:
            bool: True if running, False otherwise
        """
        return self._running


def _package_version() -> str:
    try:
        return version("ws-monitor")
    except PackageNotFoundError:
        return "unknown"


def parse_args(argv=None) -> argparse.Namespace:
    """
    Parse command line flags. Flags left unset fall back to the environment.
    """
    parser = argparse.ArgumentParser(
        prog="ws-monitor",
        description="Monitor a Substrate node websocket endpoint and export Prometheus metrics.",
    )
    parser.add_argument("--monitor-url", help="WebSocket URL of the node to monitor")
    parser.add_argument("--monitor-interval", type=float, help="Seconds between connection checks")
    parser.add_argument(
        "--monitor-connection-timeout", type=float,
        help="Seconds allowed to establish the websocket connection",
    )
    parser.add_argument(
        "--monitor-request-timeout", type=float,
        help="Seconds allowed for the RPC request",
    )
    parser.add_argument("--server-addr", help="Bind address of the metrics endpoint")
    parser.add_argument("--server-port", type=int, help="Port of the metrics endpoint")
    parser.add_argument(
        "-v", "--verbose", action="store_true", default=None,
        help="Log at DEBUG instead of INFO",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {_package_version()}")
    return parser.parse_args(argv)


def configure_logging(verbose: bool):
    """Send loguru output to stderr at DEBUG or INFO level."""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")


def main(argv=None):
    """
    Main entry point for the websocket endpoint monitor.
    """
    args = parse_args(argv)

    try:
        config = load_config(**vars(args))
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    configure_logging(config.verbose)
    logger.info(f"Welcome to ws-monitor {_package_version()}")
    logger.debug(f"Configuration: {config_to_dict(config)}")

    app = MonitorApp(config)
    try:
        app.start()
    except Exception as e:
        logger.exception(f"Application error: {str(e)}")
        sys.exit(1)

    def handle_signal(signum, frame):
        logger.info("Received shutdown signal")
        app.stop()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    # Keep the main thread running with interruptible sleep
    stop_event = threading.Event()
    while app.is_running() and not stop_event.wait(1):
        pass


if __name__ == "__main__":
    main()
