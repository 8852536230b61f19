import threading
import urllib.error
import urllib.request
from unittest.mock import Mock, patch

import pytest
from prometheus_client import CONTENT_TYPE_LATEST
from prometheus_client.parser import text_string_to_metric_families

from fakes import FakeConnection, FakeConnector, reply
from ws_monitor.app import MonitorApp, configure_logging, main, parse_args
from ws_monitor.config import MonitorConfig
from ws_monitor.counters import CounterPair, ProbeOutcome
from ws_monitor.probe import Prober


def fetch(app, path, timeout=2):
    host, port = app.server_address[:2]
    return urllib.request.urlopen(f"http://{host}:{port}{path}", timeout=timeout)


def scraped_values(body: bytes):
    family = next(text_string_to_metric_families(body.decode("utf-8")))
    return {sample.labels["result"]: sample.value for sample in family.samples}


@pytest.fixture
def idle_app(monitor_config):
    """App with a stubbed prober so only the HTTP side runs."""
    counters = CounterPair()
    app = MonitorApp(monitor_config, counters=counters, prober=Mock())
    app.start()
    yield app
    app.stop()


class TestMetricsEndpoint:
    def test_metrics_zero_counts(self, idle_app):
        response = fetch(idle_app, "/metrics")

        assert response.status == 200
        assert response.headers["Content-Type"] == CONTENT_TYPE_LATEST
        assert scraped_values(response.read()) == {"SUCCESS": 0, "TIMEOUT": 0}

    def test_metrics_reflect_counters(self, idle_app):
        idle_app.counters.record(ProbeOutcome.SUCCESS)
        idle_app.counters.record(ProbeOutcome.FAILURE)
        idle_app.counters.record(ProbeOutcome.FAILURE)

        body = fetch(idle_app, "/metrics").read()

        assert scraped_values(body) == {"SUCCESS": 1, "TIMEOUT": 2}
        assert b'endpoint="wss://node.example.org"' in body

    def test_metrics_ignores_query_string(self, idle_app):
        assert fetch(idle_app, "/metrics?format=text").status == 200

    def test_unknown_path(self, idle_app):
        with pytest.raises(urllib.error.HTTPError) as exc_info:
            fetch(idle_app, "/health")
        assert exc_info.value.code == 404

    def test_render_error_returns_500(self, idle_app):
        with patch("ws_monitor.app.render", side_effect=ValueError("boom")):
            with pytest.raises(urllib.error.HTTPError) as exc_info:
                fetch(idle_app, "/metrics")
        assert exc_info.value.code == 500

    def test_scrape_does_not_wait_for_in_flight_check(self, monitor_config):
        """A scrape during a hanging check returns the last committed values."""
        release = threading.Event()
        entered = threading.Event()

        class HangingConnection(FakeConnection):
            def recv(self, timeout=None):
                entered.set()
                release.wait(timeout)
                return super().recv(timeout)

        counters = CounterPair()
        counters.record(ProbeOutcome.SUCCESS)
        prober = Prober(
            monitor_config,
            counters,
            connect=FakeConnector(lambda: HangingConnection([reply("0x01")])),
        )
        app = MonitorApp(monitor_config, counters=counters, prober=prober)
        app.start()
        try:
            assert entered.wait(2)
            body = fetch(app, "/metrics", timeout=1).read()
            assert scraped_values(body) == {"SUCCESS": 1, "TIMEOUT": 0}
        finally:
            release.set()
            app.stop()


class TestMonitorApp:
    def test_default_counters_and_prober(self, monitor_config):
        app = MonitorApp(monitor_config)
        assert isinstance(app.counters, CounterPair)
        assert isinstance(app.prober, Prober)
        assert app.prober.counters is app.counters
        assert app.server_address is None

    @patch("ws_monitor.app.ThreadingHTTPServer")
    def test_http_server_start(self, mock_http_server):
        mock_http_server.return_value.server_address = ("0.0.0.0", 3000)
        prober = Mock()
        app = MonitorApp(MonitorConfig(), prober=prober)
        app.start()

        mock_http_server.assert_called_once()
        args = mock_http_server.call_args[0]
        assert args[0] == ("0.0.0.0", 3000)
        prober.start_probe.assert_called_once()
        assert app.is_running()

        app.stop()
        prober.stop_probe.assert_called_once()
        mock_http_server.return_value.shutdown.assert_called_once()
        assert not app.is_running()

    def test_stop_is_idempotent(self, monitor_config):
        prober = Mock()
        app = MonitorApp(monitor_config, prober=prober)
        app.start()
        app.stop()
        app.stop()
        prober.stop_probe.assert_called_once()

    @patch("ws_monitor.app.ThreadingHTTPServer", side_effect=OSError("Address already in use"))
    def test_bind_error_propagates(self, mock_http_server, monitor_config):
        prober = Mock()
        app = MonitorApp(monitor_config, prober=prober)

        with pytest.raises(OSError):
            app.start()

        prober.start_probe.assert_not_called()
        assert not app.is_running()


class TestCommandLine:
    def test_parse_args_defaults_are_unset(self):
        args = parse_args([])
        assert all(value is None for value in vars(args).values())

    def test_parse_args(self):
        args = parse_args([
            "--monitor-url", "wss://node.example.org",
            "--monitor-interval", "30",
            "--monitor-connection-timeout", "2",
            "--monitor-request-timeout", "3",
            "--server-addr", "127.0.0.1",
            "--server-port", "9000",
            "-v",
        ])
        assert args.monitor_url == "wss://node.example.org"
        assert args.monitor_interval == 30.0
        assert args.monitor_connection_timeout == 2.0
        assert args.monitor_request_timeout == 3.0
        assert args.server_addr == "127.0.0.1"
        assert args.server_port == 9000
        assert args.verbose is True

    def test_args_map_onto_config_fields(self):
        assert set(vars(parse_args([]))) <= set(MonitorConfig.model_fields)

    def test_main_exits_on_invalid_config(self):
        with pytest.raises(SystemExit) as exc_info:
            main(["--monitor-url", "http://node.example.org"])
        assert exc_info.value.code == 1

    @patch("ws_monitor.app.signal.signal")
    @patch("ws_monitor.app.configure_logging")
    @patch("ws_monitor.app.MonitorApp")
    def test_main_starts_app(self, mock_app, mock_logging, mock_signal):
        mock_app.return_value.is_running.return_value = False

        main(["--monitor-url", "wss://node.example.org", "--server-port", "9000", "--verbose"])

        config = mock_app.call_args[0][0]
        assert config.monitor_url == "wss://node.example.org"
        assert config.server_port == 9000
        mock_logging.assert_called_once_with(True)
        mock_app.return_value.start.assert_called_once()
        assert mock_signal.call_count == 2

    @patch("ws_monitor.app.signal.signal")
    @patch("ws_monitor.app.configure_logging")
    @patch("ws_monitor.app.MonitorApp")
    @patch("ws_monitor.app.logger")
    def test_main_logs_configuration(self, mock_logger, mock_app, mock_logging, mock_signal):
        mock_app.return_value.is_running.return_value = False

        main(["--monitor-url", "wss://node.example.org", "--server-port", "9000"])

        debug_messages = [call.args[0] for call in mock_logger.debug.call_args_list]
        config_lines = [m for m in debug_messages if m.startswith("Configuration: ")]
        assert len(config_lines) == 1
        assert "'monitor_url': 'wss://node.example.org'" in config_lines[0]
        assert "'server_port': 9000" in config_lines[0]

    @patch("ws_monitor.app.logger")
    def test_configure_logging(self, mock_logger):
        configure_logging(True)
        mock_logger.remove.assert_called_once()
        assert mock_logger.add.call_args[1]["level"] == "DEBUG"

        configure_logging(False)
        assert mock_logger.add.call_args[1]["level"] == "INFO"
