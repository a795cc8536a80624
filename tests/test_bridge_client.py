import json
import socket
import threading
import unittest
from concurrent.futures import ThreadPoolExecutor

from bridge_client import TcpActuatorBridge
from config import BridgeConfig
from hardware_bridge import BridgeError, HardwareCommand

WAIT_S = 2.0


class FakeBridgeServer:
    """Peer end of a socketpair speaking the JSON-lines protocol."""

    def __init__(self, sock):
        self.sock = sock
        self.reader = sock.makefile('r', encoding='utf-8', newline='\n')

    def read_request(self):
        return json.loads(self.reader.readline())

    def reply(self, message):
        self.sock.sendall((json.dumps(message) + "\n").encode('utf-8'))

    def close(self):
        self.reader.close()
        self.sock.close()


class TestTcpActuatorBridge(unittest.TestCase):
    def setUp(self):
        self.client_sock, server_sock = socket.socketpair()
        self.server = FakeBridgeServer(server_sock)
        self.factory_calls = []

        def factory(address, timeout):
            self.factory_calls.append((address, timeout))
            return self.client_sock

        self.bridge = TcpActuatorBridge(BridgeConfig(request_timeout_ms=1000), socket_factory=factory)

    def tearDown(self):
        self.bridge.close()
        self.server.close()

    def serve_once(self, respond):
        def run():
            request = self.server.read_request()
            self.server.reply(respond(request))
        thread = threading.Thread(target=run, daemon=True)
        thread.start()
        return thread

    def test_set_intensity_round_trip(self):
        requests = []

        def respond(request):
            requests.append(request)
            return {"id": request["id"], "result": {"status": "ID:0 ON", "id": "0"}}

        self.serve_once(respond)
        ack = self.bridge.set_intensity(HardwareCommand(0.5, "0", burst=True))

        self.assertEqual(ack, {"status": "ID:0 ON", "id": "0"})
        self.assertEqual(requests[0]["method"], "setIntensity")
        self.assertEqual(requests[0]["params"], {"intensity": 0.5, "cameraId": "0", "burst": True})
        self.assertEqual(self.factory_calls, [(("127.0.0.1", 8765), 5.0)])

    def test_out_of_order_replies_reach_their_callers(self):
        def serve():
            first = self.server.read_request()
            second = self.server.read_request()
            for request in (second, first):
                value = request["params"]["intensity"]
                self.server.reply({"id": request["id"], "result": {"status": f"at {value}", "id": "0"}})

        threading.Thread(target=serve, daemon=True).start()
        with ThreadPoolExecutor(max_workers=2) as pool:
            low = pool.submit(self.bridge.set_intensity, HardwareCommand(0.42, "0"))
            high = pool.submit(self.bridge.set_intensity, HardwareCommand(0.5, "0"))
            self.assertEqual(low.result(WAIT_S)["status"], "at 0.42")
            self.assertEqual(high.result(WAIT_S)["status"], "at 0.5")
        self.assertEqual(self.bridge.pending_count(), 0)

    def test_error_reply_raises(self):
        self.serve_once(lambda request: {"id": request["id"], "error": "Camera in use"})
        with self.assertRaises(BridgeError) as ctx:
            self.bridge.set_intensity(HardwareCommand(0.3, "0"))
        self.assertEqual(str(ctx.exception), "Camera in use")

    def test_timeout(self):
        self.bridge.config.request_timeout_ms = 50
        with self.assertRaises(BridgeError) as ctx:
            self.bridge.request_permissions()
        self.assertIn("timed out", str(ctx.exception))
        self.assertEqual(self.bridge.pending_count(), 0)

    def test_connection_lost_fails_pending_call(self):
        def drop():
            self.server.read_request()
            self.server.sock.shutdown(socket.SHUT_RDWR)

        threading.Thread(target=drop, daemon=True).start()
        with self.assertRaises(BridgeError) as ctx:
            self.bridge.get_hardware_info()
        self.assertIn("Connection lost", str(ctx.exception))
        self.assertFalse(self.bridge.connected)

    def test_diagnostic_result_shapes(self):
        self.serve_once(lambda request: {"id": request["id"], "result": {"result": "IDs: 0:⚡m5"}})
        self.assertEqual(self.bridge.deep_scan(), "IDs: 0:⚡m5")

        requests = []

        def respond(request):
            requests.append(request)
            return {"id": request["id"], "result": {"data": ["a = 1", "b = 2"]}}

        self.serve_once(respond)
        self.assertEqual(self.bridge.dump_characteristics("0"), ["a = 1", "b = 2"])
        self.assertEqual(requests[0]["params"], {"cameraId": "0"})


class TestConnectFailure(unittest.TestCase):
    def test_refused_connection(self):
        def refuse(address, timeout):
            raise ConnectionRefusedError("refused")

        bridge = TcpActuatorBridge(BridgeConfig(), socket_factory=refuse)
        with self.assertRaises(BridgeError):
            bridge.request_permissions()
        self.assertFalse(bridge.connected)


if __name__ == "__main__":
    unittest.main()
