"""Wire protocol helpers for the ftpctl client.

Handles line reading, reply decoding (including multi-line replies),
command sending, and the two payload grammars the client needs to
understand: the passive-mode endpoint of a 227 reply and the quoted
pathname of a 257 reply.

Commands are written as text terminated by CR LF.  Replies are decoded
as UTF-8 with undecodable bytes replaced.
"""

import ipaddress
import logging
import socket
from typing import BinaryIO, List, NamedTuple, Optional

from .status import StatusCode, lookup

logger = logging.getLogger(__name__)

ENCODING = "utf-8"
CRLF = "\r\n"

_DIGITS = "0123456789"


class ProtocolError(Exception):
    """Raised on wire protocol violations and transport failures."""


class ControlConnectionError(ProtocolError):
    """Raised when the control connection cannot be read from or written to.

    Fatal to the in-flight call.  The session is in an indeterminate
    state afterwards and should be discarded.
    """


class MalformedReplyError(ProtocolError):
    """Raised when received text does not fit the expected reply grammar.

    Attributes:
        reply: The offending Reply, when one could be decoded.
        line: The offending physical line, when decoding failed early.
    """

    def __init__(self, message: str, reply: "Optional[Reply]" = None,
                 line: Optional[str] = None) -> None:
        self.reply = reply
        self.line = line
        super().__init__(message)


class WrongReplyKindError(ProtocolError):
    """Raised when a payload parser is handed a reply of the wrong code."""

    def __init__(self, expected: int, reply: "Reply") -> None:
        self.expected = expected
        self.reply = reply
        super().__init__(
            "Expected a {} reply, got: {!r}".format(expected, reply.text))


class NotConnectedError(ProtocolError):
    """Raised when a command is issued on a closed session."""


class Reply(NamedTuple):
    """One logical server reply.

    ``text`` holds every physical line of the reply, line delimiters
    stripped, joined with ``"\\n"``.  ``code`` comes from the first
    three characters of the first line.
    """

    code: int
    text: str

    @property
    def lines(self) -> List[str]:
        return self.text.split("\n")

    @property
    def message(self) -> str:
        """Text after the code on the closing line."""
        return self.lines[-1][4:]

    @property
    def status(self) -> Optional[StatusCode]:
        return lookup(self.code)

    def __str__(self) -> str:
        return self.text


class Endpoint(NamedTuple):
    """Address of a passive-mode data connection."""

    address: ipaddress.IPv4Address
    port: int

    def __str__(self) -> str:
        return "{}:{}".format(self.address, self.port)


def read_line(reader: BinaryIO) -> str:
    """Read one physical line from a line-buffered binary reader.

    Strips trailing CR LF or bare LF.  Raises ControlConnectionError on
    EOF (including a final line with no terminator), socket timeout, or
    any other socket error.
    """
    try:
        raw = reader.readline()
    except socket.timeout:
        raise ControlConnectionError("Timed out waiting for reply from server")
    except OSError as e:
        raise ControlConnectionError("Socket error: {}".format(e))

    if not raw:
        raise ControlConnectionError("Connection closed by server")
    if not raw.endswith(b"\n"):
        raise ControlConnectionError(
            "Connection closed mid-line (partial data: {!r})".format(raw))

    line = raw[:-1]
    # Strip trailing CR (telnet line ending)
    if line.endswith(b"\r"):
        line = line[:-1]
    return line.decode(ENCODING, errors="replace")


def _parse_code(line: str) -> int:
    prefix = line[:3]
    if len(prefix) != 3 or any(c not in _DIGITS for c in prefix):
        raise MalformedReplyError(
            "Reply does not start with a status code: {!r}".format(line),
            line=line)
    if prefix[0] not in "12345":
        raise MalformedReplyError(
            "Status code out of range: {!r}".format(line), line=line)
    return int(prefix)


def read_reply(reader: BinaryIO) -> Reply:
    """Read one complete reply from the control connection.

    A line whose fourth character is a space is a complete single-line
    reply.  A line whose fourth character is ``-`` opens a multi-line
    reply, which runs up to and including the first later line that
    starts with the same code followed by a space.  Lines in between
    are kept verbatim, whatever they start with.

    Raises MalformedReplyError for lines shorter than four characters,
    non-digit codes or an unknown continuation marker.  Raises
    ControlConnectionError if the stream fails at any point.
    """
    first = read_line(reader)
    if len(first) < 4:
        raise MalformedReplyError(
            "Reply line too short: {!r}".format(first), line=first)
    code = _parse_code(first)

    if first[3] == " ":
        reply = Reply(code, first)
        logger.debug("<- %s", reply.text)
        return reply

    if first[3] != "-":
        raise MalformedReplyError(
            "Expected ' ' or '-' after status code, got: {!r}".format(first),
            line=first)

    terminator = first[:3] + " "
    lines = [first]
    while True:
        line = read_line(reader)
        lines.append(line)
        if line[:4] == terminator:
            break

    reply = Reply(code, "\n".join(lines))
    logger.debug("<- %s", reply.text)
    return reply


def mask_command(command: str) -> str:
    """Return *command* with the argument of PASS hidden."""
    if command[:5].upper() == "PASS ":
        return "PASS ****"
    return command


def send_command(sock: socket.socket, command: str) -> None:
    """Send a command line to the server.

    Appends CR LF and encodes as UTF-8.  Raises ControlConnectionError
    if the write fails.
    """
    logger.debug("-> %s", mask_command(command))
    data = (command + CRLF).encode(ENCODING)
    try:
        sock.sendall(data)
    except socket.timeout:
        raise ControlConnectionError("Timed out sending command to server")
    except OSError as e:
        raise ControlConnectionError("Socket error: {}".format(e))


def _parse_field(text: str, limit: int, reply: Reply) -> int:
    text = text.strip()
    if not text or any(c not in _DIGITS for c in text):
        raise MalformedReplyError(
            "Non-numeric field {!r} in passive reply".format(text),
            reply=reply)
    value = int(text)
    if value > limit:
        raise MalformedReplyError(
            "Field {} out of range in passive reply".format(value),
            reply=reply)
    return value


def parse_passive_endpoint(reply: Reply) -> Endpoint:
    """Extract the data-connection endpoint from a 227 reply.

    The payload is ``(h1,h2,h3,h4,p1,p2)``: four address octets followed
    by the port as two fields, ``port = p1 * 256 + p2``.

    Raises WrongReplyKindError if *reply* is not a 227 reply, whatever
    its text.  Raises MalformedReplyError if the parentheses are missing,
    there are not exactly six numeric fields, or a value is out of range.
    """
    if reply.code != StatusCode.ENTERING_PASSIVE:
        raise WrongReplyKindError(StatusCode.ENTERING_PASSIVE, reply)

    text = reply.text
    start = text.find("(")
    end = text.find(")")
    if start < 0 or end < 0 or end < start:
        raise MalformedReplyError(
            "Passive reply has no (h1,h2,h3,h4,p1,p2) section: {!r}".format(
                text), reply=reply)

    fields = text[start + 1:end].split(",")
    if len(fields) != 6:
        raise MalformedReplyError(
            "Passive reply has {} fields, expected 6: {!r}".format(
                len(fields), text), reply=reply)

    octets = [_parse_field(f, 0xFF, reply) for f in fields[:4]]
    high, low = [_parse_field(f, 0xFFFF, reply) for f in fields[4:]]
    port = high * 256 + low
    if port > 0xFFFF:
        raise MalformedReplyError(
            "Passive reply port {} out of range".format(port), reply=reply)

    address = ipaddress.IPv4Address(".".join(str(o) for o in octets))
    return Endpoint(address, port)


def parse_quoted_path(reply: Reply) -> str:
    """Return the text between the first two double quotes of *reply*.

    Used for 257 replies to PWD and MKD.  Raises MalformedReplyError if
    the reply contains fewer than two quotes.
    """
    fields = reply.text.split('"')
    if len(fields) < 3:
        raise MalformedReplyError(
            "Expected a quoted pathname in reply: {!r}".format(reply.text),
            reply=reply)
    return fields[1]
