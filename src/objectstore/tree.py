"""Tree body codec.

A tree body is a sequence of entries, each one encoded as::

    <mode> <name>\\0<20 raw bytes of the child id>

Entries are always written in ascending order of the raw bytes of their name so that
the same set of entries produces the same body, and therefore the same tree id.
"""

import logging
import re
from collections import namedtuple
from objectstore.objects import OID_RAW_LENGTH, ObjectKind, is_oid
from objectstore.objectstore_exceptions import InvalidEntry, MalformedHeader

# File modes as written by git
MODE_FILE = "100644"
MODE_EXECUTABLE = "100755"
MODE_SYMLINK = "120000"
MODE_TREE = "40000"
MODE_COMMIT = "160000"

_MODE_PATTERN = re.compile(r"^[0-7]+$")


class TreeEntry(namedtuple("TreeEntry", ["mode", "name", "oid"])):
    """A single named child of a tree.

    :param str mode: Octal file mode (ex. "100644" for a regular file).
    :param str name: Path segment of the child, never containing '/' or NUL.
    :param str oid: Hex object id of the child.
    """

    @property
    def kind(self):
        """Kind of the child object as implied by its mode."""
        return mode_to_kind(self.mode)

    def name_bytes(self):
        """Return the name as it is stored in a tree body."""
        return encode_name(self.name)


def mode_to_kind(mode):
    """Map a tree entry mode to the kind of object it references."""
    if mode.lstrip("0") == MODE_TREE:
        return ObjectKind.TREE
    if mode == MODE_COMMIT:
        return ObjectKind.COMMIT
    return ObjectKind.BLOB


def encode_name(name):
    """Return the stored bytes of an entry name."""
    if isinstance(name, bytes):
        return name
    return name.encode("utf-8", errors="surrogateescape")


def decode_name(raw_name):
    """Return the entry name for stored bytes, preserving undecodable bytes."""
    return raw_name.decode("utf-8", errors="surrogateescape")


def encode_tree(entries):
    """Serialize tree entries into a tree body.

    The entries may be supplied in any order; they are sorted by the raw bytes of
    their names before being written. Modes are written without zero padding.

    :param entries: Iterable of `TreeEntry` (or ``(mode, name, oid)`` tuples).

    :raises InvalidEntry: If an entry has an illegal name, mode or id, or if two
        entries share a name.

    :return: The tree body.
    :rtype: bytes
    """
    checked_entries = [_check_entry(TreeEntry(*entry)) for entry in entries]
    checked_entries.sort(key=lambda entry: entry.name_bytes())

    body = bytearray()
    previous_name = None
    for entry in checked_entries:
        raw_name = entry.name_bytes()
        if raw_name == previous_name:
            exception_string = (
                f"encode_tree: duplicate entry name in tree: {entry.name!r}"
            )
            logging.error(exception_string)
            raise InvalidEntry(exception_string)
        previous_name = raw_name
        body += entry.mode.encode("ascii") + b" " + raw_name + b"\0"
        body += bytes.fromhex(entry.oid)
    return bytes(body)


def decode_tree(body):
    """Parse a tree body into its entries, in stored order.

    :param bytes body: Tree body.

    :raises MalformedHeader: If the body ends in the middle of an entry, or an entry
        token is not ``"<mode> <name>"``.

    :return: Fully materialized list of entries.
    :rtype: list
    """
    entries = []
    position = 0
    body_length = len(body)
    while position < body_length:
        nul_index = body.find(b"\0", position)
        if nul_index == -1:
            exception_string = (
                f"decode_tree: entry at offset {position} has no NUL terminator."
            )
            logging.error(exception_string)
            raise MalformedHeader(exception_string)

        mode, separator, raw_name = body[position:nul_index].partition(b" ")
        if not separator or not mode or not raw_name:
            exception_string = (
                f"decode_tree: invalid entry at offset {position}:"
                + f" {body[position:nul_index]!r}"
            )
            logging.error(exception_string)
            raise MalformedHeader(exception_string)

        oid_start = nul_index + 1
        oid_end = oid_start + OID_RAW_LENGTH
        if oid_end > body_length:
            exception_string = (
                f"decode_tree: entry {raw_name!r} has {body_length - oid_start} of"
                + f" {OID_RAW_LENGTH} id bytes."
            )
            logging.error(exception_string)
            raise MalformedHeader(exception_string)

        entries.append(
            TreeEntry(
                mode.decode("ascii", errors="replace"),
                decode_name(raw_name),
                body[oid_start:oid_end].hex(),
            )
        )
        position = oid_end
    return entries


def _check_entry(entry):
    """Validate a single entry before it is encoded, returning it with its mode
    stripped of zero padding (ex. "040000" becomes "40000")."""
    mode, name, oid = entry
    if not isinstance(mode, str) or not _MODE_PATTERN.match(mode):
        exception_string = f"encode_tree: invalid mode {mode!r} for entry {name!r}"
        logging.error(exception_string)
        raise InvalidEntry(exception_string)
    canonical_mode = mode.lstrip("0")
    if not canonical_mode:
        exception_string = f"encode_tree: invalid mode {mode!r} for entry {name!r}"
        logging.error(exception_string)
        raise InvalidEntry(exception_string)
    if not isinstance(name, (str, bytes)):
        exception_string = f"encode_tree: entry name must be a string, name: {name!r}"
        logging.error(exception_string)
        raise InvalidEntry(exception_string)
    try:
        raw_name = encode_name(name)
    except UnicodeEncodeError as uee:
        exception_string = f"encode_tree: entry name cannot be encoded: {name!r}"
        logging.error(exception_string)
        raise InvalidEntry(exception_string) from uee
    if raw_name in (b"", b".", b"..") or b"\0" in raw_name or b"/" in raw_name:
        exception_string = f"encode_tree: illegal entry name: {name!r}"
        logging.error(exception_string)
        raise InvalidEntry(exception_string)
    if not is_oid(oid):
        exception_string = f"encode_tree: invalid object id {oid!r} for entry {name!r}"
        logging.error(exception_string)
        raise InvalidEntry(exception_string)
    return TreeEntry(canonical_mode, decode_name(raw_name), oid)
