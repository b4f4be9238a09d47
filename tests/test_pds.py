import base64
import json
import socket
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from habitat_node.pds import PDSClient, PDSError, basic_auth_header

PASSWORD = "password"


@pytest.fixture
def pds_server():
    state = {"status": 200, "body": b"{}", "requests": []}

    class Handler(BaseHTTPRequestHandler):
        def do_POST(self):
            length = int(self.headers.get("Content-Length", "0"))
            state["requests"].append(
                {
                    "path": self.path,
                    "headers": dict(self.headers),
                    "body": self.rfile.read(length),
                }
            )
            self.send_response(state["status"])
            self.send_header("Content-Length", str(len(state["body"])))
            self.end_headers()
            self.wfile.write(state["body"])

        def log_message(self, format, *args):
            pass

    server = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    url = f"http://127.0.0.1:{server.server_address[1]}/xrpc"
    yield url, state
    server.shutdown()
    server.server_close()


def test_basic_auth_header_round_trip():
    password = PASSWORD
    header = basic_auth_header("user", password)
    scheme, encoded = header.split(" ", 1)
    assert scheme == "Basic"
    assert base64.b64decode(encoded).decode() == "user:" + password


def test_default_url_points_at_docker_host():
    password = PASSWORD
    client = PDSClient("admin", password)
    assert client.base_url == "http://host.docker.internal:5001/xrpc"


def test_create_account(pds_server):
    url, state = pds_server
    state["body"] = json.dumps({"did": "did:plc:example"}).encode()
    password = PASSWORD
    client = PDSClient("admin", password, base_url=url)

    result = client.create_account("user@example.com", "alice.example.com", password)

    assert result == {"did": "did:plc:example"}
    request = state["requests"][0]
    assert request["path"] == "/xrpc/com.atproto.server.createAccount"
    assert request["headers"]["Content-Type"] == "application/json"
    assert "Authorization" not in request["headers"]
    assert json.loads(request["body"]) == {
        "email": "user@example.com",
        "handle": "alice.example.com",
        "password": password,
    }


def test_create_session_accepts_created(pds_server):
    url, state = pds_server
    state["status"] = 201
    state["body"] = json.dumps({"accessJwt": "token"}).encode()
    password = PASSWORD
    client = PDSClient("admin", password, base_url=url)

    result = client.create_session("alice.example.com", password)

    assert result == {"accessJwt": "token"}
    request = state["requests"][0]
    assert request["path"] == "/xrpc/com.atproto.server.createSession"
    assert json.loads(request["body"]) == {"identifier": "alice.example.com", "password": password}


def test_error_status_is_raised(pds_server):
    url, state = pds_server
    state["status"] = 400
    state["body"] = b"handle taken"
    password = PASSWORD
    client = PDSClient("admin", password, base_url=url)

    with pytest.raises(PDSError) as excinfo:
        client.create_account("user@example.com", "alice.example.com", password)
    assert "400" in str(excinfo.value)
    assert "handle taken" in str(excinfo.value)


def test_non_json_response_is_rejected(pds_server):
    url, state = pds_server
    state["body"] = b"not json"
    password = PASSWORD
    client = PDSClient("admin", password, base_url=url)
    with pytest.raises(PDSError):
        client.create_session("alice.example.com", password)


def test_unreachable_server():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    password = PASSWORD
    client = PDSClient("admin", password, base_url=f"http://127.0.0.1:{port}/xrpc", timeout=2)
    with pytest.raises(PDSError):
        client.create_session("alice.example.com", password)