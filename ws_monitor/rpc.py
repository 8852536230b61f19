"""
Minimal JSON-RPC 2.0 client over an open websocket connection.
"""

import itertools
import json
import time
from typing import Any, List, Optional

FINALIZED_HEAD_METHOD = "chain_getFinalizedHead"

_request_ids = itertools.count(1)


class RpcError(Exception):
    """Base class for failed JSON-RPC calls."""


class RpcTimeoutError(RpcError, TimeoutError):
    """No matching response arrived before the deadline."""


class RpcResponseError(RpcError):
    """The server answered with a JSON-RPC error object."""

    def __init__(self, code, message, data=None):
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"RPC error {code}: {message}")


class MalformedResponseError(RpcError):
    """The server answered with something that is not a usable response."""


def build_request(method: str, params: Optional[List[Any]], request_id: int) -> str:
    """
    Build a JSON-RPC 2.0 request envelope.

    Args:
        method: RPC method name
        params: Positional parameters, or None for no parameters
        request_id: Identifier echoed back by the server

    Returns:
        str: Serialized request
    """
    return json.dumps(
        {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": method,
            "params": params if params is not None else [],
        }
    )


def _decode(message) -> dict:
    if isinstance(message, bytes):
        try:
            message = message.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedResponseError(f"Response is not valid UTF-8: {e}") from e
    try:
        payload = json.loads(message)
    except ValueError as e:
        raise MalformedResponseError(f"Response is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise MalformedResponseError(f"Response is not a JSON object: {payload!r}")
    return payload


def call(connection, method: str, params: Optional[List[Any]] = None, timeout: float = 5.0):
    """
    Send one request and wait for its response.

    Messages carrying another id, such as subscription notifications, are
    skipped. The timeout is a single deadline for the whole exchange.

    Args:
        connection: Open websocket connection with send() and recv(timeout=)
        method: RPC method name
        params: Positional parameters
        timeout: Seconds to wait for the matching response

    Returns:
        The ``result`` member of the response

    Raises:
        RpcTimeoutError: If the deadline expires
        RpcResponseError: If the server returns an error object
        MalformedResponseError: If the response cannot be interpreted
    """
    deadline = time.monotonic() + timeout
    request_id = next(_request_ids)
    connection.send(build_request(method, params, request_id))

    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise RpcTimeoutError(f"{method} timed out after {timeout}s")
        try:
            message = connection.recv(timeout=remaining)
        except TimeoutError as e:
            raise RpcTimeoutError(f"{method} timed out after {timeout}s") from e

        payload = _decode(message)
        if payload.get("id") != request_id:
            continue

        if "error" in payload:
            error = payload["error"]
            if not isinstance(error, dict):
                raise MalformedResponseError(f"Invalid error object: {error!r}")
            raise RpcResponseError(error.get("code"), error.get("message"), error.get("data"))
        if "result" not in payload:
            raise MalformedResponseError("Response has neither result nor error")
        return payload["result"]


def fetch_finalized_head(connection, timeout: float) -> str:
    """
    Fetch the hash of the latest finalized block.

    Args:
        connection: Open websocket connection
        timeout: Seconds to wait for the response

    Returns:
        str: Finalized head hash as returned by the node
    """
    result = call(connection, FINALIZED_HEAD_METHOD, timeout=timeout)
    if not isinstance(result, str):
        raise MalformedResponseError(
            f"{FINALIZED_HEAD_METHOD} returned {type(result).__name__}, expected string"
        )
    return result
