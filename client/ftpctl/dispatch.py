"""Per-command reply dispatch for the ftpctl client.

Every command has a finite table mapping exact reply codes to an
outcome: a set of codes that mean success for that command, and a map
from recognised failure codes to exception classes.  A code in neither
is an UnexpectedReplyError.  Servers vary, so an unknown code is data
for the caller, never a crash.
"""

import enum
import logging
from typing import Callable, Dict, FrozenSet, Iterable, NamedTuple, Optional, Tuple, Type

from .protocol import Reply, mask_command
from .status import StatusCode as S

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exception hierarchy
# ---------------------------------------------------------------------------

class FtpError(Exception):
    """Base exception for replies that do not mean success.

    Attributes:
        reply: The Reply that caused the failure (None for failures
            detected locally, e.g. a data socket that would not open).
        command: The command text that was answered, with any password
            masked.
    """

    def __init__(self, reply: Optional[Reply], command: str = "",
                 detail: Optional[str] = None) -> None:
        self.reply = reply
        self.command = mask_command(command)
        if detail is None:
            detail = reply.text if reply is not None else "no reply"
        msg = detail
        if self.command:
            msg = "{} (command: {})".format(detail, self.command)
        super().__init__(msg)

    @property
    def code(self) -> Optional[int]:
        return self.reply.code if self.reply is not None else None


class UnexpectedReplyError(FtpError):
    """Well-formed reply whose code has no meaning for the command sent."""


class ServiceUnavailableError(FtpError):
    """421 -- service not available, server is closing the connection."""


class ServiceNotReadyError(FtpError):
    """120 -- server asked for a delay where a ready reply was required."""


class DataConnectionError(FtpError):
    """425 -- the data connection could not be opened, or the local data
    socket failed."""


class ActionAbortedError(FtpError):
    """426, 451, 551 -- transfer or action aborted by the server."""


class FileUnavailableError(FtpError):
    """450, 550 -- file busy, missing, or not accessible."""


class InsufficientStorageError(FtpError):
    """452, 552 -- insufficient storage or allocation exceeded."""


class CommandSyntaxError(FtpError):
    """500 -- command unrecognized.  ``command`` holds the offending line."""


class ParameterSyntaxError(FtpError):
    """501 -- syntax error in parameters.  ``command`` holds the line."""


class CommandNotImplementedError(FtpError):
    """202, 502, 504 -- command (or parameter) not implemented."""


class BadCommandSequenceError(FtpError):
    """503 -- bad sequence of commands."""


class NotLoggedInError(FtpError):
    """530 -- not logged in, or credentials rejected."""


class AccountRequiredError(FtpError):
    """332, 532 -- an account is required for the action."""


class InvalidFileNameError(FtpError):
    """553 -- file name not allowed."""


class RenameError(FtpError):
    """RNTO failed after RNFR was accepted.

    The server offers no rollback; the rename was started and not
    completed.  The underlying failure is chained as ``__cause__``.

    Attributes:
        source: Path given to RNFR.
        target: Path given to RNTO.
    """

    def __init__(self, reply: Optional[Reply], command: str, source: str,
                 target: str) -> None:
        self.source = source
        self.target = target
        detail = "Rename {} -> {} failed at RNTO: {}".format(
            source, target, reply.text if reply is not None else "no reply")
        super().__init__(reply, command, detail)


# ---------------------------------------------------------------------------
# Outcome tables
# ---------------------------------------------------------------------------

class Outcome(NamedTuple):
    """Success codes and recognised failures for one reply to one command."""

    success: FrozenSet[int]
    failures: Dict[int, Type[FtpError]]


_COMMON_FAILURES = {
    S.SERVICE_NOT_AVAILABLE: ServiceUnavailableError,
    S.SYNTAX_ERROR: CommandSyntaxError,
    S.SYNTAX_ERROR_ARGUMENTS: ParameterSyntaxError,
    S.NOT_IMPLEMENTED: CommandNotImplementedError,
    S.NOT_LOGGED_IN: NotLoggedInError,
}  # type: Dict[int, Type[FtpError]]

_FILE_FAILURES = {
    S.FILE_BUSY: FileUnavailableError,
    S.FILE_UNAVAILABLE: FileUnavailableError,
}  # type: Dict[int, Type[FtpError]]

_TRANSFER_FAILURES = {
    S.DATA_CANNOT_OPEN: DataConnectionError,
    S.DATA_CLOSED_ABORTED: ActionAbortedError,
    S.LOCAL_ERROR: ActionAbortedError,
    S.PAGE_TYPE_UNKNOWN: ActionAbortedError,
}  # type: Dict[int, Type[FtpError]]

_STORAGE_FAILURES = {
    S.INSUFFICIENT_STORAGE: InsufficientStorageError,
    S.STORAGE_EXCEEDED: InsufficientStorageError,
    S.ACCOUNT_REQUIRED_STORING: AccountRequiredError,
    S.FILE_NAME_NOT_ALLOWED: InvalidFileNameError,
}  # type: Dict[int, Type[FtpError]]


def _outcome(success: Iterable[int], *extra: Dict[int, Type[FtpError]]) -> Outcome:
    failures = dict(_COMMON_FAILURES)
    for table in extra:
        failures.update(table)
    return Outcome(frozenset(success), failures)


GREETING = Outcome(
    frozenset([S.SERVICE_READY]),
    {S.SERVICE_NOT_AVAILABLE: ServiceUnavailableError,
     S.READY_IN: ServiceNotReadyError},
)

OUTCOMES = {
    "USER": _outcome(
        [S.PASSWORD_NEEDED, S.LOGGED_IN],
        {S.ACCOUNT_NEEDED: AccountRequiredError}),
    "PASS": _outcome(
        [S.LOGGED_IN],
        {S.COMMAND_SUPERFLUOUS: CommandNotImplementedError,
         S.ACCOUNT_NEEDED: AccountRequiredError,
         S.BAD_SEQUENCE: BadCommandSequenceError}),
    "CWD": _outcome([S.FILE_ACTION_COMPLETE], _FILE_FAILURES),
    "CDUP": _outcome(
        [S.FILE_ACTION_COMPLETE, S.COMMAND_OKAY], _FILE_FAILURES),
    "PWD": _outcome([S.PATHNAME_CREATED], _FILE_FAILURES),
    "MKD": _outcome([S.PATHNAME_CREATED], _FILE_FAILURES,
                    {S.FILE_NAME_NOT_ALLOWED: InvalidFileNameError}),
    "RMD": _outcome([S.FILE_ACTION_COMPLETE], _FILE_FAILURES),
    "DELE": _outcome(
        [S.COMMAND_OKAY, S.FILE_ACTION_COMPLETE], _FILE_FAILURES),
    "RNFR": _outcome(
        [S.FILE_ACTION_COMPLETE, S.FILE_NEED_INFORMATION], _FILE_FAILURES),
    "RNTO": _outcome(
        [S.FILE_ACTION_COMPLETE],
        {S.ACCOUNT_REQUIRED_STORING: AccountRequiredError,
         S.FILE_NAME_NOT_ALLOWED: InvalidFileNameError,
         S.BAD_SEQUENCE: BadCommandSequenceError}),
    "PASV": _outcome([S.ENTERING_PASSIVE]),
    "TYPE": _outcome(
        [S.COMMAND_OKAY],
        {S.NOT_IMPLEMENTED_PARAMETER: CommandNotImplementedError}),
    "NOOP": _outcome([S.COMMAND_OKAY]),
    "SYST": _outcome([S.SYSTEM_TYPE]),
}  # type: Dict[str, Outcome]

_OPENING = [S.DATA_TRANSFER_STARTING, S.FILE_OPENING_DATA]
_CLOSING = [S.DATA_CLOSING, S.FILE_ACTION_COMPLETE]

# (opening reply, closing reply) for commands that use a data connection.
TRANSFER_OUTCOMES = {
    "LIST": (
        _outcome(_OPENING, _FILE_FAILURES, _TRANSFER_FAILURES),
        _outcome(_CLOSING, _TRANSFER_FAILURES)),
    "NLST": (
        _outcome(_OPENING, _FILE_FAILURES, _TRANSFER_FAILURES),
        _outcome(_CLOSING, _TRANSFER_FAILURES)),
    "RETR": (
        _outcome(_OPENING, _FILE_FAILURES, _TRANSFER_FAILURES),
        _outcome(_CLOSING, _TRANSFER_FAILURES)),
    "STOR": (
        _outcome(_OPENING, _FILE_FAILURES, _TRANSFER_FAILURES,
                 _STORAGE_FAILURES),
        _outcome(_CLOSING, _TRANSFER_FAILURES, _STORAGE_FAILURES)),
}  # type: Dict[str, Tuple[Outcome, Outcome]]


def verb_of(command: str) -> str:
    """Return the upper-cased command verb of *command*."""
    return command.split(" ", 1)[0].upper()


def check_reply(reply: Reply, command: str, outcome: Outcome) -> Reply:
    """Match *reply* against *outcome*.

    Returns the reply if its code is a success code.  Raises the mapped
    FtpError subclass for a recognised failure, or UnexpectedReplyError
    for any other code.
    """
    if reply.code in outcome.success:
        return reply
    exc_class = outcome.failures.get(reply.code, UnexpectedReplyError)
    logger.debug("%s answered with %d: %s", verb_of(command), reply.code,
                 exc_class.__name__)
    raise exc_class(reply, command)


# ---------------------------------------------------------------------------
# Rename state machine
# ---------------------------------------------------------------------------

class RenameState(enum.Enum):
    IDLE = "idle"
    AWAITING_TARGET = "awaiting-target"
    FAILED = "failed"


class RenameTransaction:
    """Two-step RNFR / RNTO exchange.

    ``exchange`` sends one command line and returns the reply to it.
    RNTO is only sent when RNFR was answered with 250 or 350; any other
    RNFR reply ends the transaction in FAILED without a second command.
    A failed RNTO also ends in FAILED and raises RenameError, chained
    from the mapped failure.  Nothing is rolled back.
    """

    def __init__(self, exchange: Callable[[str], Reply]) -> None:
        self._exchange = exchange
        self.state = RenameState.IDLE

    def run(self, source: str, target: str) -> Reply:
        if self.state is not RenameState.IDLE:
            raise RuntimeError(
                "Rename transaction already used (state {})".format(
                    self.state.value))

        command = "RNFR {}".format(source)
        try:
            check_reply(self._exchange(command), command, OUTCOMES["RNFR"])
        except FtpError:
            self.state = RenameState.FAILED
            raise
        self.state = RenameState.AWAITING_TARGET

        command = "RNTO {}".format(target)
        try:
            reply = check_reply(
                self._exchange(command), command, OUTCOMES["RNTO"])
        except FtpError as e:
            self.state = RenameState.FAILED
            raise RenameError(e.reply, command, source, target) from e
        self.state = RenameState.IDLE
        return reply
