"""Passive-mode data connections.

A data connection is opened per transfer, drained or filled, and closed
straight away.  It is never pooled.  Local socket failures surface as
DataConnectionError.
"""

import logging
import socket
from typing import Optional

from .dispatch import DataConnectionError
from .protocol import Endpoint

logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192


def open_data_connection(endpoint: Endpoint, timeout: Optional[float] = None,
                         command: str = "") -> socket.socket:
    """Connect to the passive endpoint advertised by the server."""
    logger.debug("Opening data connection to %s", endpoint)
    try:
        return socket.create_connection(
            (str(endpoint.address), endpoint.port), timeout=timeout)
    except OSError as e:
        raise DataConnectionError(
            None, command,
            "Could not open data connection to {}: {}".format(endpoint, e))


def recv_all(sock: socket.socket, command: str = "") -> bytes:
    """Read from *sock* until the server closes its end."""
    buf = bytearray()
    while True:
        try:
            chunk = sock.recv(CHUNK_SIZE)
        except socket.timeout:
            raise DataConnectionError(
                None, command,
                "Timed out after {} bytes on data connection".format(len(buf)))
        except OSError as e:
            raise DataConnectionError(
                None, command, "Data connection error: {}".format(e))
        if not chunk:
            break
        buf.extend(chunk)
    logger.debug("Received %d bytes on data connection", len(buf))
    return bytes(buf)


def send_all(sock: socket.socket, data: bytes, command: str = "") -> None:
    """Write *data* to *sock* and half-close it so the server sees EOF."""
    offset = 0
    try:
        while offset < len(data):
            chunk = data[offset:offset + CHUNK_SIZE]
            sock.sendall(chunk)
            offset += len(chunk)
        sock.shutdown(socket.SHUT_WR)
    except socket.timeout:
        raise DataConnectionError(
            None, command,
            "Timed out after {}/{} bytes on data connection".format(
                offset, len(data)))
    except OSError as e:
        raise DataConnectionError(
            None, command, "Data connection error: {}".format(e))
    logger.debug("Sent %d bytes on data connection", len(data))


def close_data_connection(sock: socket.socket) -> None:
    """Close *sock*; the peer may already have gone."""
    try:
        sock.close()
    except OSError as e:
        logger.debug("Error closing data connection: %s", e)
