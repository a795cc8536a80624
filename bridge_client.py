"""
Intensity Control - TCP Bridge Client
Talks to an out-of-process actuator bridge using newline-delimited JSON.

    -> {"id": 7, "method": "setIntensity", "params": {"intensity": 0.42, "cameraId": "0"}}
    <- {"id": 7, "result": {"status": "ID:0 ON", "id": "0"}}
    <- {"id": 8, "error": "Camera in use"}

A reader thread matches responses to requests by id, so overlapping calls from
the adapter's worker threads complete independently, in whatever order the
bridge answers.
"""

import itertools
import json
import socket
import threading
from concurrent.futures import Future, TimeoutError as FutureTimeout
from typing import Any, Callable, Dict, List, Optional

from config import BridgeConfig
from hardware_bridge import ActuatorBridge, BridgeError, HardwareCommand
from logging_utils import log_event


class TcpActuatorBridge(ActuatorBridge):
    def __init__(self, config: BridgeConfig,
                 socket_factory: Optional[Callable[..., socket.socket]] = None):
        """
        Args:
            config: Bridge configuration (host, port, timeouts)
            socket_factory: Called with ((host, port), timeout); defaults to socket.create_connection
        """
        self.config = config
        self._socket_factory = socket_factory or socket.create_connection

        # Connection state
        self.socket: Optional[socket.socket] = None
        self.connected = False
        self._conn_lock = threading.Lock()
        self._send_lock = threading.Lock()
        self._reader_thread: Optional[threading.Thread] = None

        # In-flight requests by id
        self._pending: Dict[int, Future] = {}
        self._pending_lock = threading.Lock()
        self._ids = itertools.count(1)

    def connect(self) -> None:
        """Connect to the bridge if not already connected"""
        with self._conn_lock:
            if self.connected:
                return
            address = (self.config.host, self.config.port)
            try:
                sock = self._socket_factory(address, self.config.connect_timeout_ms / 1000.0)
            except OSError as e:
                log_event("ERROR", "BridgeClient", "Connection failed", host=self.config.host,
                          port=self.config.port, error=e)
                raise BridgeError(f"Connection failed: {e}") from e
            sock.settimeout(None)
            self.socket = sock
            self.connected = True
            self._reader_thread = threading.Thread(
                target=self._reader_loop, args=(sock,), name="bridge-reader", daemon=True
            )
            self._reader_thread.start()
        log_event("INFO", "BridgeClient", "Connected", host=self.config.host, port=self.config.port)

    def call(self, method: str, params: Optional[dict] = None) -> Any:
        """Send one request and block until its response, error or timeout."""
        self.connect()
        request_id = next(self._ids)
        future: Future = Future()
        with self._pending_lock:
            self._pending[request_id] = future

        line = json.dumps({"id": request_id, "method": method, "params": params or {}}) + "\n"
        sock = self.socket
        try:
            if sock is None:
                raise OSError("not connected")
            with self._send_lock:
                sock.sendall(line.encode('utf-8'))
        except OSError as e:
            with self._pending_lock:
                self._pending.pop(request_id, None)
            if sock is not None:
                self._drop_connection(sock, e)
            raise BridgeError(f"Send failed: {e}") from e

        try:
            return future.result(timeout=self.config.request_timeout_ms / 1000.0)
        except FutureTimeout:
            with self._pending_lock:
                self._pending.pop(request_id, None)
            raise BridgeError(f"{method} timed out") from None

    def pending_count(self) -> int:
        with self._pending_lock:
            return len(self._pending)

    # -- bridge contract -----------------------------------------------------

    def set_intensity(self, command: HardwareCommand) -> dict:
        return self.call("setIntensity", command.to_payload())

    def request_permissions(self) -> None:
        self.call("requestPermissions")

    def get_hardware_info(self) -> dict:
        return self.call("getHardwareInfo")

    def deep_scan(self) -> str:
        result = self.call("deepScan")
        if isinstance(result, dict):
            return str(result.get("result", ""))
        return "" if result is None else str(result)

    def dump_characteristics(self, camera_id: str) -> List[str]:
        result = self.call("dumpCharacteristics", {"cameraId": camera_id})
        if isinstance(result, dict):
            result = result.get("data", [])
        if not isinstance(result, list):
            raise BridgeError(f"Malformed characteristics dump: {type(result).__name__}")
        return [str(line) for line in result]

    def close(self) -> None:
        sock = self.socket
        if sock is not None:
            self._drop_connection(sock, "closed")

    # -- internals -----------------------------------------------------------

    def _reader_loop(self, sock: socket.socket) -> None:
        """Background reader that resolves pending requests"""
        reason: Any = "connection closed by bridge"
        try:
            with sock.makefile('r', encoding='utf-8', newline='\n') as reader:
                for line in reader:
                    line = line.strip()
                    if line:
                        self._handle_line(line)
        except (OSError, ValueError) as e:
            reason = e
        self._drop_connection(sock, reason)

    def _handle_line(self, line: str) -> None:
        try:
            message = json.loads(line)
        except json.JSONDecodeError as e:
            log_event("WARN", "BridgeClient", "Unparseable response", error=e)
            return
        if not isinstance(message, dict):
            log_event("WARN", "BridgeClient", "Unexpected response shape", type=type(message).__name__)
            return

        with self._pending_lock:
            future = self._pending.pop(message.get("id"), None)
        if future is None:
            # Late answer to a request that already timed out
            log_event("DEBUG", "BridgeClient", "Unmatched response", id=message.get("id"))
            return

        if message.get("error") is not None:
            future.set_exception(BridgeError(str(message["error"])))
        else:
            future.set_result(message.get("result"))

    def _drop_connection(self, sock: socket.socket, reason) -> None:
        with self._conn_lock:
            if self.socket is not sock:
                return
            self.socket = None
            self.connected = False
        try:
            # shutdown() wakes a reader blocked in recv; close() alone does not
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        try:
            sock.close()
        except OSError:
            pass

        with self._pending_lock:
            orphaned = list(self._pending.values())
            self._pending.clear()
        for future in orphaned:
            if not future.done():
                future.set_exception(BridgeError(f"Connection lost: {reason}"))
        log_event("INFO", "BridgeClient", "Disconnected", reason=reason, failed_requests=len(orphaned))
