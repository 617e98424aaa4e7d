"""Best-effort parser for Unix-style LIST output.

LIST output is not standardised.  Most servers emit ``ls -l`` style
lines such as::

    -rw-r--r--   1 0        0        41 Feb 22 16:06 README.txt

The kind comes from the first character of the mode column and the name
is whatever follows the date columns.  Lines in other formats raise
ListingParseError, or are skipped by parse_listing() unless strict.
"""

import enum
import re
from typing import Iterable, List, NamedTuple, Optional

_DATE_NAME_RE = re.compile(
    r"[A-Za-z]{3} +\d{1,2} +(?:\d{4}|\d{1,2}:\d{2}) +(.+)$")

_KINDS = {
    "d": "DIRECTORY",
    "-": "FILE",
    "l": "LINK",
}


class ListingParseError(ValueError):
    """Raised when a listing line does not match the expected grammar."""


class EntryKind(enum.Enum):
    FILE = "file"
    DIRECTORY = "dir"
    LINK = "link"


class DirectoryEntry(NamedTuple):
    name: str
    kind: EntryKind
    target: Optional[str] = None


def parse_entry(line: str) -> DirectoryEntry:
    """Parse one ``ls -l`` style line into a DirectoryEntry."""
    line = line.lstrip("\ufeff")
    kind_name = _KINDS.get(line[:1])
    if kind_name is None:
        raise ListingParseError("Unknown entry type: {!r}".format(line))
    kind = EntryKind[kind_name]

    match = _DATE_NAME_RE.search(line)
    if match is None:
        raise ListingParseError("No name found: {!r}".format(line))
    name = match.group(1)

    target = None
    if kind is EntryKind.LINK and " -> " in name:
        name, target = name.split(" -> ", 1)
    return DirectoryEntry(name, kind, target)


def parse_listing(lines: Iterable[str], strict: bool = False) -> List[DirectoryEntry]:
    """Parse a sequence of listing lines.

    Lines that cannot be parsed (e.g. ``total 12``) are skipped unless
    *strict* is set, in which case the first one raises
    ListingParseError.
    """
    entries = []
    for line in lines:
        try:
            entries.append(parse_entry(line))
        except ListingParseError:
            if strict:
                raise
    return entries
