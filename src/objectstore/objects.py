"""Object kinds, content addressing and the loose object codec.

An object is encoded as a header followed by its body::

    <kind> <size>\\0<body>

where ``kind`` is one of ``blob``, ``tree`` or ``commit`` and ``size`` is the decimal
length of ``body``. The object id is the SHA-1 hex digest of the whole encoding, and the
encoding is deflated with zlib before it is written to disk.
"""

import enum
import hashlib
import logging
import re
import zlib
from collections import namedtuple
from objectstore.objectstore_config import MAX_OBJECT_SIZE
from objectstore.objectstore_exceptions import (
    CorruptObject,
    MalformedHeader,
    SizeMismatch,
    UnknownKind,
)

# Longest header accepted when scanning for the NUL terminator: "commit" plus a space,
# twenty digits of size and the terminator fit with room to spare.
MAX_HEADER_LENGTH = 32
# Length in bytes of the digest an object id encodes
OID_RAW_LENGTH = 20
OID_HEX_LENGTH = 40

_OID_PATTERN = re.compile(r"^[0-9a-f]{40}$")


class ObjectKind(str, enum.Enum):
    """The three kinds of objects a store holds. The value is the label written in
    the object header."""

    BLOB = "blob"
    TREE = "tree"
    COMMIT = "commit"

    def __str__(self):
        return self.value

    @classmethod
    def from_label(cls, label):
        """Return the kind for a header label.

        :param label: Label as ``str`` or ``bytes`` (ex. ``b"blob"``).

        :raises UnknownKind: If the label does not name a kind.

        :return: The matching kind.
        :rtype: ObjectKind
        """
        if isinstance(label, bytes):
            label = label.decode("ascii", errors="replace")
        try:
            return cls(label)
        except ValueError as err:
            exception_string = f"ObjectKind - from_label: unknown object kind: {label!r}"
            logging.error(exception_string)
            raise UnknownKind(exception_string) from err


class StoredObject(namedtuple("StoredObject", ["kind", "body"])):
    """An immutable object: its kind and its body bytes.

    :param ObjectKind kind: Kind of the object.
    :param bytes body: Content of the object, without the header.
    """

    def __new__(cls, kind, body=b""):
        if isinstance(body, str):
            body = body.encode("utf-8")
        return super(StoredObject, cls).__new__(cls, ObjectKind(kind), bytes(body))

    @property
    def size(self):
        """Number of bytes in the body."""
        return len(self.body)


def is_oid(value):
    """Return True if `value` is a 40 character lowercase hex object id."""
    return isinstance(value, str) and bool(_OID_PATTERN.match(value))


def check_oid(oid):
    """Raise ValueError if `oid` is not a full object id."""
    if not is_oid(oid):
        exception_string = (
            f"check_oid: object id must be 40 lowercase hex characters, oid: {oid!r}"
        )
        logging.error(exception_string)
        raise ValueError(exception_string)
    return oid


def build_header(kind, size):
    """Return the encoded header ``"<kind> <size>\\0"``."""
    return f"{ObjectKind(kind).value} {size}\0".encode("ascii")


def encode_object(obj):
    """Serialize `obj` into its canonical loose object encoding.

    :param StoredObject obj: Object to encode.

    :return: Header followed by the body.
    :rtype: bytes
    """
    return build_header(obj.kind, len(obj.body)) + obj.body


def address(kind, body):
    """Compute the object id of a body of the given kind.

    :param ObjectKind kind: Kind of the object.
    :param bytes body: Body of the object.

    :return: Lowercase hex SHA-1 digest of the encoded object.
    :rtype: str
    """
    hashobj = hashlib.sha1(build_header(kind, len(body)))
    hashobj.update(body)
    return hashobj.hexdigest()


def decode_object(data, max_size=MAX_OBJECT_SIZE):
    """Parse an encoded object back into a `StoredObject`.

    :param bytes data: Header followed by the body.
    :param int max_size: Largest declared body size accepted.

    :raises MalformedHeader: If the header has no NUL terminator within
        ``MAX_HEADER_LENGTH`` bytes or is not ``"<kind> <size>"``.
    :raises UnknownKind: If the kind is not recognized.
    :raises SizeMismatch: If the size is not a canonical decimal, exceeds `max_size` or
        differs from the number of bytes that follow the header.

    :return: The decoded object.
    :rtype: StoredObject
    """
    nul_index = data.find(b"\0", 0, MAX_HEADER_LENGTH)
    if nul_index == -1:
        exception_string = (
            "decode_object: no header terminator found in the first"
            + f" {MAX_HEADER_LENGTH} bytes."
        )
        logging.error(exception_string)
        raise MalformedHeader(exception_string)

    header_tokens = data[:nul_index].split(b" ")
    if len(header_tokens) != 2:
        exception_string = f"decode_object: invalid header: {data[:nul_index]!r}"
        logging.error(exception_string)
        raise MalformedHeader(exception_string)
    kind_token, size_token = header_tokens

    kind = ObjectKind.from_label(kind_token)
    size = _parse_size(size_token, max_size)

    body_start = nul_index + 1
    remaining = len(data) - body_start
    if remaining != size:
        exception_string = (
            f"decode_object: header declares {size} bytes for {kind.value} but"
            + f" {remaining} bytes follow it."
        )
        logging.error(exception_string)
        raise SizeMismatch(exception_string)
    return StoredObject(kind, data[body_start : body_start + size])


def _parse_size(size_token, max_size):
    """Convert the size token of a header to an int, rejecting anything that is not
    a canonical non-negative decimal within `max_size`."""
    canonical = size_token.isdigit() and (size_token == b"0" or size_token[:1] != b"0")
    if not canonical:
        exception_string = f"decode_object: invalid size in header: {size_token!r}"
        logging.error(exception_string)
        raise SizeMismatch(exception_string)
    if len(size_token) > len(str(max_size)) or int(size_token) > max_size:
        exception_string = (
            f"decode_object: declared size {size_token.decode('ascii')} exceeds the"
            + f" maximum object size of {max_size} bytes."
        )
        logging.error(exception_string)
        raise SizeMismatch(exception_string)
    return int(size_token)


def pack(data, level=-1):
    """Deflate encoded object bytes for storage."""
    return zlib.compress(data, level)


def unpack(data, max_length=None):
    """Inflate bytes produced by `pack`.

    :param bytes data: Compressed stream.
    :param int max_length: Largest inflated length accepted; ``None`` for no bound.

    :raises CorruptObject: If the stream is invalid, truncated, followed by trailing
        bytes, or inflates past `max_length`.

    :return: The inflated bytes.
    :rtype: bytes
    """
    decompressor = zlib.decompressobj()
    try:
        if max_length is None:
            inflated = decompressor.decompress(data)
        else:
            # Ask for one extra byte so that output past the bound is detectable
            inflated = decompressor.decompress(data, max_length + 1)
    except zlib.error as err:
        exception_string = f"unpack: invalid compressed stream: {err}"
        logging.error(exception_string)
        raise CorruptObject(exception_string) from err

    if max_length is not None and (
        len(inflated) > max_length or decompressor.unconsumed_tail
    ):
        exception_string = (
            f"unpack: compressed stream inflates past {max_length} bytes."
        )
        logging.error(exception_string)
        raise CorruptObject(exception_string)
    if not decompressor.eof:
        exception_string = "unpack: compressed stream ended before its end marker."
        logging.error(exception_string)
        raise CorruptObject(exception_string)
    if decompressor.unused_data:
        exception_string = (
            f"unpack: {len(decompressor.unused_data)} unexpected bytes after the"
            + " end of the compressed stream."
        )
        logging.error(exception_string)
        raise CorruptObject(exception_string)
    return inflated
