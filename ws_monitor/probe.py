import socket
import ssl
import threading
import time
from contextlib import ExitStack
from threading import Event

from loguru import logger
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI
from websockets.sync.client import connect as ws_connect

from .config import MonitorConfig
from .counters import CounterPair, ProbeOutcome
from .rpc import RpcError, fetch_finalized_head


class Prober:
    """
    Periodically checks that the monitored node accepts a websocket
    connection and answers a finalized head request.

    Each cycle opens a fresh connection, issues one request and closes the
    connection again. Every error in either phase counts as a failure.
    """

    def __init__(self, config: MonitorConfig, counters: CounterPair, connect=ws_connect):
        """
        Initialize the prober.

        Args:
            config (MonitorConfig): Target address, interval and timeouts
            counters (CounterPair): Shared counters, written only by this prober
            connect: Websocket connect function returning a context manager,
                replaceable for tests
        """
        self.url = config.monitor_url
        self.interval = config.monitor_interval
        self.connection_timeout = config.monitor_connection_timeout
        self.request_timeout = config.monitor_request_timeout
        self.counters = counters
        self._connect = connect
        self.consecutive_failures = 0
        self._running = False
        self._thread = None
        self._stop_event = Event()

    def _categorize_error(self, exception: Exception) -> str:
        """
        Categorize an exception for log output.

        Args:
            exception: The exception to categorize

        Returns:
            str: Error category (timeout, cert, dns, handshake, protocol, network, unknown)
        """
        # Timeout errors (check first, RpcTimeoutError is both)
        if isinstance(exception, (TimeoutError, socket.timeout)):
            return "timeout"

        # SSL errors are OSError subclasses
        if isinstance(exception, (ssl.SSLError, ssl.CertificateError)):
            return "cert"

        if isinstance(exception, socket.gaierror):
            return "dns"

        if isinstance(exception, (InvalidHandshake, InvalidURI)):
            return "handshake"

        if isinstance(exception, RpcError):
            return "protocol"

        if isinstance(exception, (ConnectionClosed, ConnectionError, OSError)):
            return "network"

        return "unknown"

    def _record_failure(self, phase: str, exception: Exception, start_time: float) -> ProbeOutcome:
        self.consecutive_failures += 1
        logger.warning(
            f"Check of {self.url} failed during {phase} "
            f"({self._categorize_error(exception)}): {exception}. "
            f"Consecutive: {self.consecutive_failures}, "
            f"Execution time: {time.monotonic() - start_time:.2f}s"
        )
        return ProbeOutcome.FAILURE

    def _close(self, stack: ExitStack) -> None:
        try:
            stack.close()
        except Exception as e:
            logger.debug(f"Error closing connection to {self.url}: {str(e)}")

    def _check(self) -> ProbeOutcome:
        start_time = time.monotonic()

        # connect() is entered as a context manager; exiting closes the socket
        stack = ExitStack()
        try:
            connection = stack.enter_context(
                self._connect(
                    self.url,
                    open_timeout=self.connection_timeout,
                    close_timeout=self.connection_timeout,
                )
            )
        except Exception as e:
            return self._record_failure("connection", e, start_time)

        try:
            head = fetch_finalized_head(connection, self.request_timeout)
        except Exception as e:
            return self._record_failure("RPC request", e, start_time)
        finally:
            self._close(stack)

        self.consecutive_failures = 0
        logger.debug(f"Successful check, finalized head: {head}")
        return ProbeOutcome.SUCCESS

    def execute(self) -> ProbeOutcome:
        """
        Run one connect-probe-disconnect cycle and count its outcome.

        Returns:
            ProbeOutcome: SUCCESS if the node answered with a finalized head
        """
        outcome = self._check()
        self.counters.record(outcome)
        return outcome

    def run(self):
        """
        Probe on a fixed period until stopped.

        The first check runs immediately. A check that overruns the interval
        is followed by the next one straight away; checks never overlap.
        """
        next_tick = time.monotonic()
        while not self._stop_event.is_set():
            delay = next_tick - time.monotonic()
            # Use Event.wait() instead of time.sleep() for interruptible sleep
            if delay > 0 and self._stop_event.wait(delay):
                break
            self.execute()
            next_tick += self.interval

    def start_probe(self):
        """
        Start the probe loop in a separate thread.
        """
        if self._thread is not None and self._thread.is_alive():
            logger.warning(f"Prober for {self.url} already running")
            return

        self._running = True
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run, daemon=True, name="Prober")
        self._thread.start()

    def stop_probe(self):
        """
        Stop the probe loop.
        """
        if not self._running:
            return

        self._running = False
        self._stop_event.set()  # Signal the thread to stop

        if self._thread is not None:
            # An in-flight check is bounded by the two timeouts
            self._thread.join(timeout=self.connection_timeout + self.request_timeout + 1)
            if self._thread.is_alive():
                logger.warning(f"Prober thread for {self.url} did not stop gracefully")
            self._thread = None

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


def run(config: MonitorConfig, counters: CounterPair):
    """
    Probe the configured endpoint forever, updating the given counters.

    Args:
        config (MonitorConfig): Monitor configuration
        counters (CounterPair): Shared counters
    """
    Prober(config, counters).run()
