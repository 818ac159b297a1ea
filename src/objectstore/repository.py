"""Repository facade: the operations a command line or another program calls on a
store, composed from the object codec, the tree codec and a `FileObjectStore`."""

import logging
import os
import time
from contextlib import closing
from objectstore.objectstore import ObjectStoreFactory
from objectstore.objectstore_config import (
    COMPRESSION_LEVEL,
    DEFAULT_BRANCH,
    MAX_OBJECT_SIZE,
    VERIFY_ON_READ,
)
from objectstore.objectstore_exceptions import InvalidEntry, UnexpectedKind
from objectstore.fileobjectstore import FileObjectStore, Stream
from objectstore.objects import ObjectKind, StoredObject, address, check_oid, is_oid
from objectstore.tree import decode_tree, encode_tree

HEAD_FILE = "HEAD"
REF_PREFIX = "ref: "
DEFAULT_IDENTITY = "objectstore <objectstore@localhost>"


def default_properties(store_path, **overrides):
    """Return a complete properties dictionary for `store_path` using the default
    configuration, with any keyword overrides applied (ex. store_default_branch="main")."""
    properties = {
        "store_path": str(store_path),
        "store_default_branch": DEFAULT_BRANCH,
        "store_compression_level": COMPRESSION_LEVEL,
        "store_max_object_size": MAX_OBJECT_SIZE,
        "store_verify_on_read": VERIFY_ON_READ,
    }
    properties.update(overrides)
    return properties


class Repository:
    """A content-addressed repository: an object store plus a single symbolic `HEAD`.

    Open an existing repository with ``Repository(root)``; create one with
    ``Repository.init(root)``.

    :param str root: Path to the store directory.
    :param str module_name: Module providing the object store implementation.
    :param str class_name: Class of the object store implementation.
    """

    store_module = "objectstore.fileobjectstore"
    store_class = "FileObjectStore"

    def __init__(self, root, module_name=None, class_name=None):
        properties = FileObjectStore.load_properties(root)
        self.root = str(root)
        self.store = ObjectStoreFactory.get_objectstore(
            module_name or self.store_module,
            class_name or self.store_class,
            properties,
        )
        self.head_file = os.path.join(self.root, HEAD_FILE)

    @classmethod
    def init(cls, root, properties=None):
        """Create the store layout at `root` and point `HEAD` at the default branch.

        Calling `init` on an already initialized root leaves its objects, its
        configuration and its `HEAD` untouched. When `properties` are supplied for an
        existing root they must match the stored configuration.

        :param str root: Path to the store directory.
        :param dict properties: Optional store properties; defaults are used for a new
            store and the stored configuration for an existing one.

        :return: The opened repository.
        :rtype: Repository
        """
        root = str(root)
        try:
            checked_properties = FileObjectStore.load_properties(root)
        except FileNotFoundError:
            checked_properties = default_properties(root)
        if properties:
            checked_properties.update(properties)
        checked_properties["store_path"] = root

        store = ObjectStoreFactory.get_objectstore(
            cls.store_module, cls.store_class, checked_properties
        )
        head_file = os.path.join(root, HEAD_FILE)
        if not os.path.exists(head_file):
            head = f"{REF_PREFIX}refs/heads/{store.default_branch}\n"
            store.write_atomically(head_file, head.encode("utf-8"))
            logging.info("Repository - init: Initialized empty repository in %s", root)
        else:
            logging.info("Repository - init: Reinitialized existing repository in %s", root)
        return cls(root)

    # Objects

    def exists(self, oid):
        """Return True if an object is stored under `oid`."""
        return self.store.exists(oid)

    def write_object(self, kind, body):
        """Store a body of the given kind and return its id."""
        return self.store.put(StoredObject(kind, body))

    def write_blob(self, content):
        """Store `content` (bytes, or str encoded as UTF-8) as a blob.

        :return: Id of the blob.
        :rtype: str
        """
        return self.write_object(ObjectKind.BLOB, content)

    def read_object(self, oid, expected_kind=None):
        """Read the object stored under `oid`.

        :param str oid: Object id.
        :param ObjectKind expected_kind: Kind the caller requires, if any.

        :raises ObjectNotFound: If no object is stored under `oid`.
        :raises CorruptObject: If the stored object cannot be read back.
        :raises UnexpectedKind: If `expected_kind` is given and the object differs.

        :return: The stored object.
        :rtype: StoredObject
        """
        obj = self.store.get(oid)
        if expected_kind is not None and obj.kind != ObjectKind(expected_kind):
            exception_string = (
                f"Repository - read_object: object {oid} is a {obj.kind.value},"
                + f" expected a {ObjectKind(expected_kind).value}."
            )
            logging.error(exception_string)
            raise UnexpectedKind(exception_string)
        return obj

    def list_tree(self, oid):
        """Return the entries of the tree stored under `oid`, in name order.

        :raises UnexpectedKind: If `oid` is not a tree.
        :raises MalformedHeader: If the tree body is not a valid entry sequence.

        :rtype: list
        """
        tree = self.read_object(oid, expected_kind=ObjectKind.TREE)
        return decode_tree(tree.body)

    def write_tree(self, entries):
        """Encode `entries` as a tree and store it.

        :param entries: Iterable of `TreeEntry` or ``(mode, name, oid)`` tuples, in
            any order.

        :return: Id of the tree.
        :rtype: str
        """
        return self.write_object(ObjectKind.TREE, encode_tree(entries))

    def write_commit(
        self,
        tree_id,
        message,
        parents=(),
        author=DEFAULT_IDENTITY,
        committer=None,
        timestamp=None,
        tz_offset="+0000",
    ):
        """Store a commit pointing at `tree_id`.

        :param str tree_id: Id of an existing tree.
        :param str message: Commit message.
        :param parents: Ids of the parent commits.
        :param str author: ``"Name <email>"`` of the author.
        :param str committer: ``"Name <email>"`` of the committer, the author if None.
        :param int timestamp: Seconds since the epoch, the current time if None.
        :param str tz_offset: Timezone offset written after the timestamp.

        :raises UnexpectedKind: If `tree_id` is not a tree.

        :return: Id of the commit.
        :rtype: str
        """
        self.read_object(tree_id, expected_kind=ObjectKind.TREE)
        for parent in parents:
            check_oid(parent)
        if timestamp is None:
            timestamp = int(time.time())
        committer = committer or author

        lines = [f"tree {tree_id}"]
        lines.extend(f"parent {parent}" for parent in parents)
        lines.append(f"author {author} {timestamp} {tz_offset}")
        lines.append(f"committer {committer} {timestamp} {tz_offset}")
        body = "\n".join(lines) + "\n\n" + message
        if not body.endswith("\n"):
            body += "\n"
        return self.write_object(ObjectKind.COMMIT, body)

    def hash_object(self, data, kind=ObjectKind.BLOB, write=False):
        """Compute the id of `data` as an object of `kind`, storing it if `write`.

        :param mixed data: Bytes, or a path or readable stream to take the body from.
        :param ObjectKind kind: Kind of the object.
        :param bool write: Store the object as well as hashing it.

        :raises MalformedHeader: If a tree body cannot be decoded.
        :raises InvalidEntry: If a tree body is not in the order and form written by
            `encode_tree`.

        :return: Id of the object.
        :rtype: str
        """
        if isinstance(data, (bytes, bytearray)):
            body = bytes(data)
        else:
            stream = Stream(data)
            with closing(stream):
                body = stream.read_all()
        if kind == ObjectKind.TREE:
            # Reject tree bodies that encode_tree would not produce
            if encode_tree(decode_tree(body)) != body:
                exception_string = (
                    "Repository - hash_object: tree body is not in canonical form"
                    + " (entries must be sorted by name and modes unpadded)."
                )
                logging.error(exception_string)
                raise InvalidEntry(exception_string)
        if write:
            return self.write_object(kind, body)
        return address(kind, body)

    # HEAD

    def head(self):
        """Return what `HEAD` points to: a reference path (ex. "refs/heads/master") or
        an object id."""
        with open(self.head_file, "r", encoding="utf-8") as head_file:
            content = head_file.read().strip()
        if content.startswith(REF_PREFIX):
            return content[len(REF_PREFIX) :].strip()
        return content

    def set_head(self, target):
        """Point `HEAD` at a reference path or, when `target` is an object id, detach
        it onto that object. The file is replaced atomically."""
        if is_oid(target):
            head = f"{target}\n"
        else:
            if not target or any(ch.isspace() or ch == "\0" for ch in target):
                exception_string = f"Repository - set_head: invalid reference: {target!r}"
                logging.error(exception_string)
                raise ValueError(exception_string)
            head = f"{REF_PREFIX}{target}\n"
        self.store.write_atomically(self.head_file, head.encode("utf-8"))
        logging.info("Repository - set_head: HEAD now points to %s", target)
