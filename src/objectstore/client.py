"""ObjectStore Command Line App"""
import enum
import logging
import os
import sys
from argparse import ArgumentParser
from pathlib import Path
from objectstore.objectstore_config import CONFIG_FILE, STORE_PATH
from objectstore.objectstore_exceptions import ObjectStoreError
from objectstore.objects import ObjectKind, unpack
from objectstore.repository import Repository
from objectstore.tree import TreeEntry, decode_tree


class Command(str, enum.Enum):
    """Commands understood by the client."""

    INIT = "init"
    HASH_OBJECT = "hash-object"
    CAT_FILE = "cat-file"
    LS_TREE = "ls-tree"
    MKTREE = "mktree"
    COMMIT_TREE = "commit-tree"
    HEAD = "head"
    DECOMPRESS = "decompress"


class ObjectStoreParser:
    """Class to set up parsing arguments via argparse."""

    def __init__(self):
        """Initialize the argparse 'parser'."""

        program_name = "objectstore"
        description = (
            "Command line tool to write, read and list objects in a content-addressed"
            + " object store."
        )

        self.parser = ArgumentParser(prog=program_name, description=description)

        # Add optional arguments shared by every command
        self.parser.add_argument(
            "-C",
            "--store-path",
            dest="store_path",
            default=STORE_PATH,
            help=f"Path of the ObjectStore (default: {STORE_PATH})",
        )
        self.parser.add_argument(
            "-loglevel",
            dest="logging_level",
            help="Set logging level for the client",
        )

        subparsers = self.parser.add_subparsers(dest="command", required=True)

        init_parser = subparsers.add_parser(
            Command.INIT.value, help="Create an ObjectStore"
        )
        init_parser.add_argument(
            "-b",
            "--default-branch",
            dest="default_branch",
            help="Branch the initial HEAD points to",
        )

        hash_parser = subparsers.add_parser(
            Command.HASH_OBJECT.value, help="Compute the id of a file, optionally storing it"
        )
        hash_parser.add_argument("file", nargs="?", help="Path of the file to hash")
        hash_parser.add_argument(
            "-w", dest="write", action="store_true", help="Write the object to the store"
        )
        hash_parser.add_argument(
            "-t",
            dest="kind",
            default=ObjectKind.BLOB.value,
            choices=[kind.value for kind in ObjectKind],
            help="Kind of the object (default: blob)",
        )
        hash_parser.add_argument(
            "--stdin", action="store_true", help="Read the object from standard input"
        )

        cat_parser = subparsers.add_parser(
            Command.CAT_FILE.value, help="Show the content, kind or size of an object"
        )
        cat_mode = cat_parser.add_mutually_exclusive_group()
        cat_mode.add_argument(
            "-p", dest="pretty", action="store_true", help="Pretty-print the object"
        )
        cat_mode.add_argument(
            "-t", dest="show_kind", action="store_true", help="Show the object kind"
        )
        cat_mode.add_argument(
            "-s", dest="show_size", action="store_true", help="Show the object size"
        )
        cat_mode.add_argument(
            "-e",
            dest="check_exists",
            action="store_true",
            help="Exit with zero status if the object exists",
        )
        cat_parser.add_argument(
            "args",
            nargs="+",
            metavar="[kind] object",
            help="Object id, optionally preceded by the kind it must have",
        )

        ls_parser = subparsers.add_parser(
            Command.LS_TREE.value, help="List the entries of a tree"
        )
        ls_parser.add_argument("tree", help="Id of the tree")
        ls_parser.add_argument(
            "--name-only", action="store_true", help="Only show entry names"
        )

        subparsers.add_parser(
            Command.MKTREE.value,
            help="Build a tree from '<mode> <kind> <id>\\t<name>' lines on standard input",
        )

        commit_parser = subparsers.add_parser(
            Command.COMMIT_TREE.value, help="Create a commit for a tree"
        )
        commit_parser.add_argument("tree", help="Id of the tree")
        commit_parser.add_argument(
            "-p", dest="parents", action="append", default=[], help="Id of a parent"
        )
        commit_parser.add_argument("-m", dest="message", required=True, help="Message")
        commit_parser.add_argument("--author", help="'Name <email>' of the author")

        head_parser = subparsers.add_parser(
            Command.HEAD.value, help="Show HEAD, or point it at a reference or object"
        )
        head_parser.add_argument("target", nargs="?", help="Reference path or object id")

        subparsers.add_parser(
            Command.DECOMPRESS.value,
            help="Inflate zlib data from standard input to standard output",
        )

    def get_parser_args(self, argv=None):
        """Get command line arguments."""
        return self.parser.parse_args(argv)


class ObjectStoreClient:
    """Run client commands against a Repository. Every method returns the bytes to
    write to standard output."""

    def __init__(self, store_path):
        self.repository = Repository(store_path)
        logging.info("ObjectStoreClient - Repository opened at %s.", store_path)

    def hash_object(self, file, kind, write, stdin):
        if stdin:
            data = sys.stdin.buffer
        elif file is not None:
            data = file
        else:
            raise ValueError("'file' or '--stdin' is required")
        oid = self.repository.hash_object(data, ObjectKind(kind), write=write)
        return f"{oid}\n".encode("ascii")

    def cat_file(self, args, pretty, show_kind, show_size):
        if len(args) > 2:
            raise ValueError("cat-file takes at most a kind and an object id")
        expected_kind = ObjectKind.from_label(args[0]) if len(args) == 2 else None
        oid = args[-1]
        obj = self.repository.read_object(oid, expected_kind=expected_kind)
        if show_kind:
            return f"{obj.kind.value}\n".encode("ascii")
        if show_size:
            return f"{obj.size}\n".encode("ascii")
        if pretty and obj.kind == ObjectKind.TREE:
            return format_tree(decode_tree(obj.body))
        return obj.body

    def ls_tree(self, tree, name_only):
        entries = self.repository.list_tree(tree)
        return format_tree(entries, name_only=name_only)

    def mktree(self, lines):
        entries = [parse_tree_line(line) for line in lines if line.strip()]
        oid = self.repository.write_tree(entries)
        return f"{oid}\n".encode("ascii")

    def commit_tree(self, tree, parents, message, author):
        kwargs = {"parents": parents}
        if author:
            kwargs["author"] = author
        oid = self.repository.write_commit(tree, message, **kwargs)
        return f"{oid}\n".encode("ascii")

    def head(self, target):
        if target is not None:
            self.repository.set_head(target)
            return b""
        return f"{self.repository.head()}\n".encode("utf-8")


def format_tree(entries, name_only=False):
    """Format tree entries the way `ls-tree` prints them."""
    lines = []
    for entry in entries:
        if name_only:
            lines.append(f"{entry.name}\n")
        else:
            lines.append(
                f"{entry.mode.zfill(6)} {entry.kind.value} {entry.oid}\t{entry.name}\n"
            )
    return "".join(lines).encode("utf-8", errors="surrogateescape")


def parse_tree_line(line):
    """Parse a ``<mode> <kind> <id>\\t<name>`` line into a `TreeEntry`."""
    line = line.rstrip("\n")
    info, separator, name = line.partition("\t")
    fields = info.split()
    if not separator or len(fields) != 3:
        raise ValueError(f"invalid tree line: {line!r}")
    mode, kind, oid = fields
    ObjectKind.from_label(kind)
    return TreeEntry(mode, name, oid)


def _write_stdout(data):
    """Write bytes to standard output."""
    sys.stdout.flush()
    sys.stdout.buffer.write(data)
    sys.stdout.buffer.flush()


def main(argv=None):
    """Entry point of the ObjectStore client. Returns the process exit status."""

    parser = ObjectStoreParser()
    args = parser.get_parser_args(argv)
    command = Command(getattr(args, "command"))
    store_path = getattr(args, "store_path")

    try:
        if command == Command.DECOMPRESS:
            _write_stdout(unpack(sys.stdin.buffer.read()))
            return 0

        # Client setup process
        if command == Command.INIT:
            properties = {}
            if getattr(args, "default_branch"):
                properties["store_default_branch"] = getattr(args, "default_branch")
            Repository.init(store_path, properties)
            print(f"Initialized object store in {os.path.abspath(store_path)}")

        # Can't use client app without first initializing the ObjectStore
        store_path_config_yaml = os.path.join(store_path, CONFIG_FILE)
        if not os.path.exists(store_path_config_yaml):
            raise FileNotFoundError(
                f"Missing config file ({CONFIG_FILE}) at store path: {store_path}."
                + " ObjectStore must first be initialized, use `init`."
            )
        # Setup logging, create log file if it doesn't already exist
        objectstore_py_log = os.path.join(store_path, "objectstore_client.log")
        python_log_file_path = Path(objectstore_py_log)
        if not os.path.exists(python_log_file_path):
            open(python_log_file_path, "w", encoding="utf-8").close()
        # Check for logging level
        logging_level_arg = getattr(args, "logging_level")
        if logging_level_arg is None:
            logging_level = "INFO"
        else:
            logging_level = logging_level_arg.upper()
        logging.basicConfig(
            filename=python_log_file_path,
            level=logging_level,
            format="%(asctime)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        if command == Command.INIT:
            return 0

        objectstore_c = ObjectStoreClient(store_path)
        if command == Command.HASH_OBJECT:
            output = objectstore_c.hash_object(
                getattr(args, "file"),
                getattr(args, "kind"),
                getattr(args, "write"),
                getattr(args, "stdin"),
            )
        elif command == Command.CAT_FILE:
            if getattr(args, "check_exists"):
                return 0 if objectstore_c.repository.exists(args.args[-1]) else 1
            output = objectstore_c.cat_file(
                getattr(args, "args"),
                getattr(args, "pretty"),
                getattr(args, "show_kind"),
                getattr(args, "show_size"),
            )
        elif command == Command.LS_TREE:
            output = objectstore_c.ls_tree(
                getattr(args, "tree"), getattr(args, "name_only")
            )
        elif command == Command.MKTREE:
            output = objectstore_c.mktree(sys.stdin.read().splitlines())
        elif command == Command.COMMIT_TREE:
            output = objectstore_c.commit_tree(
                getattr(args, "tree"),
                getattr(args, "parents"),
                getattr(args, "message"),
                getattr(args, "author"),
            )
        elif command == Command.HEAD:
            output = objectstore_c.head(getattr(args, "target"))
        _write_stdout(output)
        return 0
    except (ObjectStoreError, ValueError, OSError) as err:
        logging.error("ObjectStoreClient - %s failed: %s", command.value, err)
        print(f"objectstore: {type(err).__name__}: {err}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
