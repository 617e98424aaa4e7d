"""FTP reply codes known to the ftpctl client.

Codes are the three-digit values from RFC 959 section 4.2.  The table is
pure data: nothing here decides whether a code means success for a given
command.  That decision lives in the per-command tables in
:mod:`ftpctl.dispatch`.
"""

import enum
from typing import Dict, Optional


class StatusCode(enum.IntEnum):
    """Reply codes with a documented meaning."""

    RESTART_MARKER = 110
    READY_IN = 120
    DATA_TRANSFER_STARTING = 125
    FILE_OPENING_DATA = 150

    COMMAND_OKAY = 200
    COMMAND_SUPERFLUOUS = 202
    SYSTEM_STATUS = 211
    DIRECTORY_STATUS = 212
    FILE_STATUS = 213
    HELP_MESSAGE = 214
    SYSTEM_TYPE = 215
    SERVICE_READY = 220
    SERVICE_CLOSING = 221
    DATA_OPEN_NO_TRANSFER = 225
    DATA_CLOSING = 226
    ENTERING_PASSIVE = 227
    LOGGED_IN = 230
    FILE_ACTION_COMPLETE = 250
    PATHNAME_CREATED = 257

    PASSWORD_NEEDED = 331
    ACCOUNT_NEEDED = 332
    FILE_NEED_INFORMATION = 350

    SERVICE_NOT_AVAILABLE = 421
    DATA_CANNOT_OPEN = 425
    DATA_CLOSED_ABORTED = 426
    FILE_BUSY = 450
    LOCAL_ERROR = 451
    INSUFFICIENT_STORAGE = 452

    SYNTAX_ERROR = 500
    SYNTAX_ERROR_ARGUMENTS = 501
    NOT_IMPLEMENTED = 502
    BAD_SEQUENCE = 503
    NOT_IMPLEMENTED_PARAMETER = 504
    NOT_LOGGED_IN = 530
    ACCOUNT_REQUIRED_STORING = 532
    FILE_UNAVAILABLE = 550
    PAGE_TYPE_UNKNOWN = 551
    STORAGE_EXCEEDED = 552
    FILE_NAME_NOT_ALLOWED = 553


_MEANINGS = {
    StatusCode.RESTART_MARKER: "Restart marker reply",
    StatusCode.READY_IN: "Service ready in nnn minutes",
    StatusCode.DATA_TRANSFER_STARTING:
        "Data connection already open; transfer starting",
    StatusCode.FILE_OPENING_DATA:
        "File status okay; about to open data connection",
    StatusCode.COMMAND_OKAY: "Command okay",
    StatusCode.COMMAND_SUPERFLUOUS:
        "Command not implemented, superfluous at this site",
    StatusCode.SYSTEM_STATUS: "System status, or system help reply",
    StatusCode.DIRECTORY_STATUS: "Directory status",
    StatusCode.FILE_STATUS: "File status",
    StatusCode.HELP_MESSAGE: "Help message",
    StatusCode.SYSTEM_TYPE: "NAME system type",
    StatusCode.SERVICE_READY: "Service ready for new user",
    StatusCode.SERVICE_CLOSING: "Service closing control connection",
    StatusCode.DATA_OPEN_NO_TRANSFER:
        "Data connection open; no transfer in progress",
    StatusCode.DATA_CLOSING: "Closing data connection",
    StatusCode.ENTERING_PASSIVE: "Entering Passive Mode (h1,h2,h3,h4,p1,p2)",
    StatusCode.LOGGED_IN: "User logged in, proceed",
    StatusCode.FILE_ACTION_COMPLETE: "Requested file action okay, completed",
    StatusCode.PATHNAME_CREATED: "\"PATHNAME\" created",
    StatusCode.PASSWORD_NEEDED: "User name okay, need password",
    StatusCode.ACCOUNT_NEEDED: "Need account for login",
    StatusCode.FILE_NEED_INFORMATION:
        "Requested file action pending further information",
    StatusCode.SERVICE_NOT_AVAILABLE:
        "Service not available, closing control connection",
    StatusCode.DATA_CANNOT_OPEN: "Can't open data connection",
    StatusCode.DATA_CLOSED_ABORTED: "Connection closed; transfer aborted",
    StatusCode.FILE_BUSY: "Requested file action not taken; file busy",
    StatusCode.LOCAL_ERROR:
        "Requested action aborted: local error in processing",
    StatusCode.INSUFFICIENT_STORAGE:
        "Requested action not taken; insufficient storage space",
    StatusCode.SYNTAX_ERROR: "Syntax error, command unrecognized",
    StatusCode.SYNTAX_ERROR_ARGUMENTS:
        "Syntax error in parameters or arguments",
    StatusCode.NOT_IMPLEMENTED: "Command not implemented",
    StatusCode.BAD_SEQUENCE: "Bad sequence of commands",
    StatusCode.NOT_IMPLEMENTED_PARAMETER:
        "Command not implemented for that parameter",
    StatusCode.NOT_LOGGED_IN: "Not logged in",
    StatusCode.ACCOUNT_REQUIRED_STORING: "Need account for storing files",
    StatusCode.FILE_UNAVAILABLE:
        "Requested action not taken; file unavailable",
    StatusCode.PAGE_TYPE_UNKNOWN: "Requested action aborted: page type unknown",
    StatusCode.STORAGE_EXCEEDED:
        "Requested file action aborted; exceeded storage allocation",
    StatusCode.FILE_NAME_NOT_ALLOWED:
        "Requested action not taken; file name not allowed",
}  # type: Dict[StatusCode, str]

_CATEGORIES = {
    "1": "positive preliminary",
    "2": "positive completion",
    "3": "positive intermediate",
    "4": "transient negative",
    "5": "permanent negative",
}  # type: Dict[str, str]


def lookup(code: int) -> Optional[StatusCode]:
    """Return the StatusCode member for *code*, or None if unknown."""
    try:
        return StatusCode(code)
    except ValueError:
        return None


def describe(code: int) -> str:
    """Return the documented meaning of *code*."""
    status = lookup(code)
    if status is None:
        return "Unknown reply code"
    return _MEANINGS[status]


def category(code: int) -> str:
    """Return the reply class implied by the leading digit of *code*.

    Informative only.  Recovery semantics differ between codes of the
    same class, so dispatch always matches exact codes.
    """
    return _CATEGORIES.get(str(code)[:1], "unknown")
