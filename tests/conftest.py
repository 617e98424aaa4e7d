"""Shared fixtures and helpers for the ftpctl tests.

Two kinds of test doubles are provided:

* ``replies()`` / ``make_mock_conn()`` build an FtpConnection whose
  control socket is a MagicMock and whose reader is an in-memory stream
  of canned replies.  Commands written are recovered with
  ``sent_commands()``.
* ``ftp_server`` starts a ScriptedFtpServer on loopback that answers each
  command from a script, including real passive data connections.

Usage:
    pytest tests/ -v
"""

import io
import os
import socket
import sys
import threading
from unittest import mock

import pytest

# Add the client library to the path so tests can import ftpctl
_client_dir = os.path.join(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
    "client",
)
if _client_dir not in sys.path:
    sys.path.insert(0, _client_dir)

from ftpctl import FtpConnection


# ---------------------------------------------------------------------------
# In-memory control connection
# ---------------------------------------------------------------------------

def replies(*lines):
    """Return a binary reader yielding *lines*, each terminated by CR LF."""
    return io.BytesIO("".join(line + "\r\n" for line in lines).encode("utf-8"))


def make_mock_conn(*lines):
    """Create a connected FtpConnection that reads *lines* as replies.

    The control socket is a MagicMock; nothing touches the network.
    """
    conn = FtpConnection.__new__(FtpConnection)
    conn.host = "test"
    conn.port = 21
    conn.timeout = 5
    conn._sock = mock.MagicMock()
    conn._reader = replies(*lines)
    conn._welcome = "220 test server"
    return conn


def sent_commands(sock):
    """Return the command lines written to a mocked socket, CR LF removed."""
    commands = []
    for call in sock.sendall.call_args_list:
        data = call[0][0].decode("utf-8")
        assert data.endswith("\r\n"), "Command not CR LF terminated: {!r}".format(data)
        commands.append(data[:-2])
    return commands


# ---------------------------------------------------------------------------
# Scripted loopback server
# ---------------------------------------------------------------------------

class Step:
    """One command/reply exchange in a server script.

    expect: Prefix the received command must start with.
    replies: Reply lines to send.  For data steps the first line is sent
        before the data connection is served and the rest after it.
    data: Bytes to send over the data connection.
    upload: If True, read the data connection to EOF into
        ``server.uploads``.
    """

    def __init__(self, expect, replies=(), data=None, upload=False):
        self.expect = expect
        self.replies = list(replies)
        self.data = data
        self.upload = upload


class ScriptedFtpServer:
    """Single-client FTP server that follows a fixed script.

    A PASV step with no replies opens a data listener on loopback and
    answers 227 with its address.  Commands received are recorded in
    ``commands``; any failure inside the server thread is stored in
    ``error``.  QUIT is always answered with 221.
    """

    def __init__(self, greeting, steps):
        self.greeting = list(greeting)
        self.steps = list(steps)
        self.commands = []
        self.uploads = []
        self.error = None
        self._listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._listener.bind(("127.0.0.1", 0))
        self._listener.listen(1)
        self._listener.settimeout(5)
        self.host, self.port = self._listener.getsockname()
        self._data_listener = None
        self._thread = threading.Thread(target=self._run, daemon=True)

    def start(self):
        self._thread.start()
        return self

    def join(self):
        self._thread.join(timeout=5)

    @staticmethod
    def _send(conn, lines):
        if lines:
            conn.sendall("".join(l + "\r\n" for l in lines).encode("utf-8"))

    def _run(self):
        try:
            conn, _addr = self._listener.accept()
            conn.settimeout(5)
            with conn:
                reader = conn.makefile("rb")
                self._send(conn, self.greeting)
                for step in self.steps:
                    command = self._read_command(reader)
                    if command is None:
                        return
                    if command == "QUIT" and step.expect != "QUIT":
                        self._send(conn, ["221 Goodbye"])
                        return
                    if not command.startswith(step.expect):
                        raise AssertionError(
                            "Expected {!r}, got {!r}".format(step.expect, command))
                    self._handle(conn, step, command)
                while True:
                    command = self._read_command(reader)
                    if command is None:
                        return
                    if command == "QUIT":
                        self._send(conn, ["221 Goodbye"])
        except Exception as e:
            self.error = e
        finally:
            self._listener.close()
            if self._data_listener is not None:
                self._data_listener.close()

    def _read_command(self, reader):
        raw = reader.readline()
        if not raw:
            return None
        command = raw.decode("utf-8").rstrip("\r\n")
        self.commands.append(command)
        return command

    def _handle(self, conn, step, command):
        if command == "PASV" and not step.replies:
            self._data_listener = socket.socket(
                socket.AF_INET, socket.SOCK_STREAM)
            self._data_listener.bind(("127.0.0.1", 0))
            self._data_listener.listen(1)
            self._data_listener.settimeout(5)
            port = self._data_listener.getsockname()[1]
            self._send(conn, [
                "227 Entering Passive Mode (127,0,0,1,{},{})".format(
                    port >> 8, port & 0xFF)])
            return

        if step.data is None and not step.upload:
            self._send(conn, step.replies)
            return

        self._send(conn, step.replies[:1])
        data_conn, _addr = self._data_listener.accept()
        with data_conn:
            data_conn.settimeout(5)
            if step.upload:
                buf = bytearray()
                while True:
                    chunk = data_conn.recv(4096)
                    if not chunk:
                        break
                    buf.extend(chunk)
                self.uploads.append(bytes(buf))
            else:
                data_conn.sendall(step.data)
        self._data_listener.close()
        self._data_listener = None
        self._send(conn, step.replies[1:])


@pytest.fixture
def ftp_server():
    """Factory fixture: ``ftp_server(steps, greeting=...)`` starts a server.

    The server thread is joined on teardown and any error it recorded
    fails the test.
    """
    servers = []

    def start(steps, greeting=("220 ready",)):
        server = ScriptedFtpServer(greeting, steps).start()
        servers.append(server)
        return server

    yield start

    for server in servers:
        server.join()
        assert server.error is None, "Server error: {!r}".format(server.error)
