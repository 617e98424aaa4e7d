"""ftpctl -- Python client library for FTP servers.

Provides FtpConnection for talking to an FTP server over its control
connection, plus an exception hierarchy mapping reply codes to Python
exceptions.  Data transfers use passive mode.

Usage::

    with FtpConnection("ftp.example.com") as ftp:
        ftp.login("anonymous", "guest@example.com")
        print(ftp.pwd())
        for line in ftp.list_dir():
            print(line)
"""

import logging
import socket
from typing import BinaryIO, List, Optional

from .dispatch import (
    GREETING, OUTCOMES, TRANSFER_OUTCOMES,
    AccountRequiredError, ActionAbortedError, BadCommandSequenceError,
    CommandNotImplementedError, CommandSyntaxError, DataConnectionError,
    FileUnavailableError, FtpError, InsufficientStorageError,
    InvalidFileNameError, NotLoggedInError, ParameterSyntaxError,
    RenameError, RenameState, RenameTransaction, ServiceNotReadyError,
    ServiceUnavailableError, UnexpectedReplyError,
    check_reply, verb_of,
)
from .data import close_data_connection, open_data_connection, recv_all, send_all
from .listing import DirectoryEntry, EntryKind, ListingParseError, parse_listing
from .protocol import (
    ControlConnectionError, Endpoint, MalformedReplyError, NotConnectedError,
    ProtocolError, Reply, WrongReplyKindError,
    parse_passive_endpoint, parse_quoted_path, read_reply, send_command,
)
from .status import StatusCode


__all__ = [
    "FtpConnection",
    "Reply",
    "Endpoint",
    "StatusCode",
    "DirectoryEntry",
    "EntryKind",
    "ProtocolError",
    "ControlConnectionError",
    "MalformedReplyError",
    "WrongReplyKindError",
    "NotConnectedError",
    "ListingParseError",
    "FtpError",
    "UnexpectedReplyError",
    "ServiceUnavailableError",
    "ServiceNotReadyError",
    "DataConnectionError",
    "ActionAbortedError",
    "FileUnavailableError",
    "InsufficientStorageError",
    "CommandSyntaxError",
    "ParameterSyntaxError",
    "CommandNotImplementedError",
    "BadCommandSequenceError",
    "NotLoggedInError",
    "AccountRequiredError",
    "InvalidFileNameError",
    "RenameError",
    "RenameState",
    "RenameTransaction",
]

logger = logging.getLogger(__name__)

# Seconds to wait for the reply to QUIT when the session has no timeout
QUIT_TIMEOUT = 10


def _split_lines(data: bytes) -> List[str]:
    """Decode a listing payload into lines, dropping trailing empties."""
    lines = [line.rstrip("\r")
             for line in data.decode("utf-8", errors="replace").split("\n")]
    while lines and not lines[-1]:
        lines.pop()
    return lines


# ---------------------------------------------------------------------------
# Connection class
# ---------------------------------------------------------------------------

class FtpConnection:
    """A control connection to an FTP server.

    Can be used as a context manager::

        with FtpConnection("ftp.example.com") as ftp:
            ftp.login()
            print(ftp.pwd())

    Or managed manually::

        ftp = FtpConnection("ftp.example.com")
        ftp.connect()
        try:
            ftp.login()
            print(ftp.pwd())
        finally:
            ftp.close()

    One command is outstanding at a time.  A connection must not be
    shared between threads; open one per thread instead.

    *timeout* applies to every socket read, write and connect on both
    the control and data connections.  None blocks indefinitely.
    """

    def __init__(
        self,
        host: str,
        port: int = 21,
        timeout: Optional[float] = 30,
    ) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout
        self._sock = None  # type: Optional[socket.socket]
        self._reader = None  # type: Optional[BinaryIO]
        self._welcome = None  # type: Optional[str]

    # -- Context manager ---------------------------------------------------

    def __enter__(self) -> "FtpConnection":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore
        self.close()
        return None

    def __repr__(self) -> str:
        state = "connected" if self._sock is not None else "disconnected"
        return "FtpConnection({!r}, port={}, {})".format(
            self.host, self.port, state)

    # -- Connection lifecycle ----------------------------------------------

    def connect(self) -> Reply:
        """Open the control connection and wait for the server greeting.

        Accepts 220, or 120 followed by 220.  Any other greeting, or a
        failure to connect, leaves the object disconnected.  Returns the
        greeting reply.
        """
        if self._sock is not None:
            raise ProtocolError("Already connected")
        logger.info("Connecting to %s:%s", self.host, self.port)
        try:
            sock = socket.create_connection(
                (self.host, self.port), timeout=self.timeout)
        except OSError as e:
            raise ControlConnectionError(
                "Could not connect to {}:{}: {}".format(
                    self.host, self.port, e))

        reader = sock.makefile("rb")
        try:
            reply = read_reply(reader)
            if reply.code == StatusCode.READY_IN:
                logger.info("Server delayed greeting: %s", reply.text)
                reply = read_reply(reader)
            check_reply(reply, "", GREETING)
        except Exception:
            reader.close()
            sock.close()
            raise

        self._sock = sock
        self._reader = reader
        self._welcome = reply.text
        logger.info("Connected to %s:%s", self.host, self.port)
        return reply

    def quit(self) -> Optional[Reply]:
        """Send QUIT and close the connection.

        The server's reply is read best-effort and returned, or None if
        it could not be read.  Without a session timeout the wait for
        that reply is bounded by QUIT_TIMEOUT.  The socket is closed in
        both directions whatever happens.  Only a failure to write QUIT
        is raised.
        """
        if self._sock is None:
            return None
        reply = None
        try:
            send_command(self._sock, "QUIT")
            if self.timeout is None:
                self._sock.settimeout(QUIT_TIMEOUT)
            try:
                reply = read_reply(self._reader)
            except ProtocolError as e:
                logger.debug("No usable reply to QUIT: %s", e)
        finally:
            self._shutdown()
        return reply

    def close(self) -> None:
        """Send QUIT (best-effort) and close the socket."""
        if self._sock is None:
            return
        try:
            self.quit()
        except ControlConnectionError as e:
            logger.debug("QUIT failed while closing: %s", e)

    def _shutdown(self) -> None:
        sock, reader = self._sock, self._reader
        self._sock = None
        self._reader = None
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            logger.debug("Shutdown of control connection failed: %s", e)
        reader.close()
        sock.close()
        logger.info("Disconnected from %s:%s", self.host, self.port)

    def _drop(self) -> None:
        """Release a control connection whose stream has failed."""
        sock, reader = self._sock, self._reader
        self._sock = None
        self._reader = None
        for resource in (reader, sock):
            try:
                resource.close()
            except OSError as e:
                logger.debug("Error closing failed control connection: %s", e)
        logger.info("Lost control connection to %s:%s", self.host, self.port)

    @property
    def connected(self) -> bool:
        return self._sock is not None

    @property
    def welcome(self) -> Optional[str]:
        """The greeting text received on connect, or None if not connected."""
        return self._welcome

    # -- Internal helpers --------------------------------------------------

    def _exchange(self, command: str) -> Reply:
        """Send one command line and read the reply to it.

        A failure of the control stream ends the session: the socket is
        released and later calls raise NotConnectedError.
        """
        if self._sock is None:
            raise NotConnectedError("Not connected")
        try:
            send_command(self._sock, command)
        except ControlConnectionError:
            self._drop()
            raise
        return self._read_reply()

    def _read_reply(self) -> Reply:
        try:
            return read_reply(self._reader)
        except ControlConnectionError:
            self._drop()
            raise

    def _command(self, command: str) -> Reply:
        """Send a command and check its reply against the command's table.

        Returns the reply on success.  Raises the appropriate FtpError
        subclass otherwise.
        """
        reply = self._exchange(command)
        return check_reply(reply, command, OUTCOMES[verb_of(command)])

    def _transfer(self, command: str, payload: Optional[bytes] = None) -> bytes:
        """Run a command that moves bytes over a passive data connection.

        With *payload* None the data connection is drained and its bytes
        returned; otherwise *payload* is written to it.  The opening
        reply (125/150) is checked before any data moves, and the
        closing reply (226/250) after the data connection is closed.  A
        server that answers with the closing reply straight away has
        sent its only confirmation.
        """
        opening, closing = TRANSFER_OUTCOMES[verb_of(command)]
        endpoint = self.passive()
        data_sock = open_data_connection(endpoint, self.timeout, command)
        received = b""
        final = None  # type: Optional[Reply]
        try:
            first = self._exchange(command)
            if first.code in closing.success:
                final = first
            else:
                check_reply(first, command, opening)
            if payload is None:
                received = recv_all(data_sock, command)
            else:
                send_all(data_sock, payload, command)
        finally:
            close_data_connection(data_sock)

        if final is None:
            check_reply(self._read_reply(), command, closing)
        return received

    # -- Session commands --------------------------------------------------

    def login(self, user: str = "anonymous", password: Optional[str] = None) -> Reply:
        """Authenticate with USER, then PASS if the server asks for it.

        A 230 reply to USER completes the login without sending PASS.
        A 530 reply to USER is reported as NotLoggedInError.
        """
        reply = self._command("USER {}".format(user))
        if reply.code == StatusCode.LOGGED_IN:
            return reply
        return self._command("PASS {}".format(password or ""))

    def noop(self) -> None:
        """Send NOOP."""
        self._command("NOOP")

    def system(self) -> str:
        """Send SYST and return the system type text (e.g. "UNIX Type: L8")."""
        return self._command("SYST").message

    def set_binary(self) -> None:
        """Switch the transfer type to image (TYPE I)."""
        self._command("TYPE I")

    def set_ascii(self) -> None:
        """Switch the transfer type to ASCII (TYPE A)."""
        self._command("TYPE A")

    # -- Directory operations ----------------------------------------------

    def cwd(self, path: str) -> None:
        """Change the working directory."""
        self._command("CWD {}".format(path))

    def cdup(self) -> None:
        """Change to the parent of the working directory."""
        self._command("CDUP")

    def pwd(self) -> str:
        """Return the working directory quoted in the 257 reply to PWD."""
        return parse_quoted_path(self._command("PWD"))

    def mkdir(self, name: str) -> str:
        """Create a directory.

        Returns the pathname quoted in the reply, or *name* if the
        server did not quote one.
        """
        reply = self._command("MKD {}".format(name))
        if reply.text.count('"') >= 2:
            return parse_quoted_path(reply)
        return name

    def rmdir(self, name: str) -> None:
        """Remove a directory."""
        self._command("RMD {}".format(name))

    # -- File operations ---------------------------------------------------

    def delete(self, name: str) -> None:
        """Delete a file."""
        self._command("DELE {}".format(name))

    def rename(self, source: str, target: str) -> None:
        """Rename *source* to *target* with RNFR / RNTO.

        If RNFR fails, RNTO is never sent and the mapped failure is
        raised.  If RNTO fails, RenameError is raised.
        """
        RenameTransaction(self._exchange).run(source, target)

    def passive(self) -> Endpoint:
        """Send PASV and return the advertised data endpoint."""
        return parse_passive_endpoint(self._command("PASV"))

    def list_dir(self, path: Optional[str] = None) -> List[str]:
        """Return the raw LIST output for *path* as lines."""
        command = "LIST" if path is None else "LIST {}".format(path)
        return _split_lines(self._transfer(command))

    def nlst(self, path: Optional[str] = None) -> List[str]:
        """Return the names in *path* (NLST)."""
        command = "NLST" if path is None else "NLST {}".format(path)
        return _split_lines(self._transfer(command))

    def entries(self, path: Optional[str] = None) -> List[DirectoryEntry]:
        """List *path* and parse each line into a DirectoryEntry.

        Lines that are not in Unix ``ls -l`` format are skipped.
        """
        return parse_listing(self.list_dir(path))

    def retrieve(self, name: str) -> bytes:
        """Download a file and return its contents."""
        return self._transfer("RETR {}".format(name))

    def store(self, name: str, data: bytes) -> None:
        """Upload *data* as file *name*."""
        self._transfer("STOR {}".format(name), payload=data)
