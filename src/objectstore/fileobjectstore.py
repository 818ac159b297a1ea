"""Core module for FileObjectStore"""

import atexit
import io
import os
import logging
from pathlib import Path
from tempfile import NamedTemporaryFile
import yaml
from objectstore.objectstore import ObjectStore
from objectstore.objectstore_config import CONFIG_FILE, DIR_DEPTH, DIR_WIDTH
from objectstore.objectstore_exceptions import (
    CorruptObject,
    ObjectNotFound,
    ObjectStoreError,
)
from objectstore.objects import (
    MAX_HEADER_LENGTH,
    OID_HEX_LENGTH,
    address,
    check_oid,
    decode_object,
    encode_object,
    pack,
    unpack,
)


class FileObjectStore(ObjectStore):
    """FileObjectStore is a loose object database on a local file system. Every object
    is stored zlib-compressed in its own file, addressed by the SHA-1 hex digest of its
    encoded form and sharded into a fan-out directory named after the first two
    characters of the digest.

    FileObjectStore initializes using a given properties dictionary containing the
    required keys (see Args). Upon initialization, FileObjectStore verifies the provided
    properties and writes a configuration file 'objectstore.yaml' to the given store
    path if there is none yet. If one exists, the supplied properties must match it.

    :param dict properties: A Python dictionary with the following keys (and values):
        - store_path (str): Path to the ObjectStore directory.
        - store_default_branch (str): Branch the initial HEAD points to.
        - store_compression_level (int): zlib level used when writing objects (-1 to 9).
        - store_max_object_size (int): Largest object body accepted when reading.
        - store_verify_on_read (bool): Whether to re-derive the id of objects read.
    """

    # Property (objectstore configuration) requirements
    property_required_keys = [
        "store_path",
        "store_default_branch",
        "store_compression_level",
        "store_max_object_size",
        "store_verify_on_read",
    ]
    # Permissions settings for writing files and creating directories
    fmode = 0o664
    dmode = 0o755
    # Prefix of the private files objects are staged in before they are published
    tmp_prefix = "tmp_"

    def __init__(self, properties=None):
        if properties:
            # Validate properties against existing configuration if present
            checked_properties = self._validate_properties(properties)
            (
                prop_store_path,
                prop_default_branch,
                prop_compression_level,
                prop_max_object_size,
                prop_verify_on_read,
            ) = [
                checked_properties[property_name]
                for property_name in self.property_required_keys
            ]

            # Check to see if a configuration is present in the given store path
            self.root = str(prop_store_path)
            self.objectstore_configuration_yaml = os.path.join(self.root, CONFIG_FILE)
            self._verify_objectstore_properties(checked_properties, self.root)

            # If no exceptions thrown, FileObjectStore ready for initialization
            logging.debug("FileObjectStore - Initializing, properties verified.")
            self.default_branch = prop_default_branch
            self.compression_level = prop_compression_level
            self.max_object_size = prop_max_object_size
            self.verify_on_read = prop_verify_on_read
            self.depth = DIR_DEPTH
            self.width = DIR_WIDTH
            # Write 'objectstore.yaml' to store path
            if not os.path.exists(self.objectstore_configuration_yaml):
                logging.debug(
                    "FileObjectStore - ObjectStore does not exist & configuration file"
                    + " not found. Writing configuration file."
                )
                try:
                    self._write_properties(checked_properties)
                except FileExistsError:
                    # Another process initialized the store since it was verified
                    logging.debug(
                        "FileObjectStore - Configuration file written concurrently."
                        + " Verifying properties."
                    )
                    self._verify_objectstore_properties(checked_properties, self.root)
            # Complete initialization by setting and creating store directories
            self.objects = os.path.join(self.root, "objects")
            self.refs = os.path.join(self.root, "refs")
            if not os.path.exists(self.objects):
                self._create_path(self.objects)
            if not os.path.exists(self.refs):
                self._create_path(os.path.join(self.refs, "heads"))
            logging.debug(
                "FileObjectStore - Initialization success. Store root: %s", self.root
            )
        else:
            # Cannot instantiate or initialize FileObjectStore without config
            exception_string = (
                "FileObjectStore - ObjectStore properties must be supplied."
                + f" Properties: {properties}"
            )
            logging.debug(exception_string)
            raise ValueError(exception_string)

    # Configuration and Related Methods

    @classmethod
    def load_properties(cls, store_path):
        """Get and return the properties of the store at `store_path`, read from its
        'objectstore.yaml' file.

        :param str store_path: Path to the ObjectStore directory.

        :raises FileNotFoundError: If no configuration file exists at `store_path`.
        :raises ValueError: If the configuration file is not valid YAML or lacks a
            required key.

        :return: ObjectStore properties, including ``store_path``.
        :rtype: dict
        """
        objectstore_yaml_path = os.path.join(str(store_path), CONFIG_FILE)
        if not os.path.exists(objectstore_yaml_path):
            exception_string = (
                "FileObjectStore - load_properties: objectstore.yaml not found"
                + f" in store root path: {store_path}"
            )
            logging.critical(exception_string)
            raise FileNotFoundError(exception_string)

        # Open file
        try:
            with open(objectstore_yaml_path, "r", encoding="utf-8") as os_yaml_file:
                yaml_data = yaml.safe_load(os_yaml_file)
        except yaml.YAMLError as ye:
            exception_string = (
                "FileObjectStore - load_properties: objectstore.yaml at"
                + f" {objectstore_yaml_path} is not valid YAML: {ye}"
            )
            logging.critical(exception_string)
            raise ValueError(exception_string) from ye

        # Get objectstore properties
        objectstore_yaml_dict = {"store_path": str(store_path)}
        for key in cls.property_required_keys:
            if key != "store_path":
                if not isinstance(yaml_data, dict) or key not in yaml_data:
                    exception_string = (
                        "FileObjectStore - load_properties: objectstore.yaml at"
                        + f" {objectstore_yaml_path} is missing key: {key}"
                    )
                    logging.critical(exception_string)
                    raise ValueError(exception_string)
                objectstore_yaml_dict[key] = yaml_data[key]
        logging.debug(
            "FileObjectStore - load_properties: Successfully retrieved"
            + " 'objectstore.yaml' properties."
        )
        return objectstore_yaml_dict

    def _write_properties(self, properties):
        """Writes 'objectstore.yaml' to FileObjectStore's root directory with the
        respective properties object supplied.

        :param dict properties: Validated ObjectStore properties.
        """
        # If objectstore.yaml already exists, must throw exception and proceed with caution
        if os.path.exists(self.objectstore_configuration_yaml):
            exception_string = (
                "FileObjectStore - write_properties: configuration file"
                + " 'objectstore.yaml' already exists."
            )
            logging.error(exception_string)
            raise FileExistsError(exception_string)

        # If given store path doesn't exist yet, create it.
        if not os.path.exists(self.root):
            self._create_path(self.root)

        # .yaml file to write
        objectstore_configuration_yaml = self._build_objectstore_yaml_string(
            properties["store_default_branch"],
            properties["store_compression_level"],
            properties["store_max_object_size"],
            properties["store_verify_on_read"],
        )
        self.write_atomically(
            self.objectstore_configuration_yaml,
            objectstore_configuration_yaml.encode("utf-8"),
            exclusive=True,
        )
        logging.debug(
            "FileObjectStore - write_properties: Configuration file written to: %s",
            self.objectstore_configuration_yaml,
        )

    @staticmethod
    def _build_objectstore_yaml_string(
        store_default_branch,
        store_compression_level,
        store_max_object_size,
        store_verify_on_read,
    ):
        """Build a YAML string representing the configuration for an ObjectStore.

        :param str store_default_branch: Branch the initial HEAD points to.
        :param int store_compression_level: zlib level used when writing objects.
        :param int store_max_object_size: Largest object body accepted when reading.
        :param bool store_verify_on_read: Whether to re-derive the id of objects read.

        :return: A YAML string representing the configuration for an ObjectStore.
        :rtype: str
        """
        verify_on_read = "true" if store_verify_on_read else "false"
        objectstore_configuration_yaml = f"""
        # Configuration variables for ObjectStore

        ############### References ###############
        # Branch that HEAD points to when the store is initialized
        store_default_branch: "{store_default_branch}"

        ############### Objects ###############
        # zlib compression level used when writing objects (-1 selects the zlib default)
        store_compression_level: {store_compression_level}
        # Largest object body, in bytes, accepted when reading an object
        store_max_object_size: {store_max_object_size}
        # Re-derive the id of every object read from disk and reject mismatches
        store_verify_on_read: {verify_on_read}

        ############### Directory Structure ###############
        # Objects are stored in a directory named after the first two characters of
        # their id, in a file named after the remaining 38 characters.
        #    .objectstore/objects
        #    └── bd
        #        └── 9dbf5aae1a3862dd1526723246b20206e5fc37
        """
        return objectstore_configuration_yaml

    def _verify_objectstore_properties(self, properties, prop_store_path):
        """Determines whether FileObjectStore can instantiate by validating a set of
        arguments and throwing exceptions. FileObjectStore will not instantiate if an
        existing configuration file's properties (`objectstore.yaml`) are different from
        what is supplied, or if an object directory exists at the given path but the
        `objectstore.yaml` config file is missing.

        :param dict properties: ObjectStore properties.
        :param str prop_store_path: Store path to check.
        """
        if os.path.exists(self.objectstore_configuration_yaml):
            logging.debug(
                "FileObjectStore - Config found (objectstore.yaml) at {%s}."
                + " Verifying properties.",
                self.objectstore_configuration_yaml,
            )
            # If 'objectstore.yaml' is found, verify given properties before init
            objectstore_yaml_dict = self.load_properties(prop_store_path)
            for key in self.property_required_keys:
                # 'store_path' is required to init ObjectStore but not saved in the yaml
                if key != "store_path":
                    if objectstore_yaml_dict[key] != properties[key]:
                        exception_string = (
                            f"FileObjectStore - Given properties ({key}: {properties[key]})"
                            + f" does not match. ObjectStore configuration ({key}:"
                            + f" {objectstore_yaml_dict[key]}) found at:"
                            + f" {self.objectstore_configuration_yaml}"
                        )
                        logging.critical(exception_string)
                        raise ValueError(exception_string)
        else:
            if os.path.isdir(os.path.join(prop_store_path, "objects")):
                exception_string = (
                    "FileObjectStore - Unable to initialize ObjectStore. `objectstore.yaml`"
                    + " is not present but an '/objects' directory exists at the store"
                    + f" path: {prop_store_path}. Please delete it or supply a new path."
                )
                logging.critical(exception_string)
                raise RuntimeError(exception_string)

    def _validate_properties(self, properties):
        """Validate a properties dictionary by checking if it contains all the
        required keys with non-None values of the expected types.

        :param dict properties: Dictionary containing fileobjectstore properties.

        :raises KeyError: If key is missing from the required keys.
        :raises ValueError: If value is missing or invalid for a required key.

        :return: The given properties object (that has been validated).
        :rtype: dict
        """
        if not isinstance(properties, dict):
            exception_string = (
                "FileObjectStore - _validate_properties: Invalid argument -"
                + " expected a dictionary."
            )
            logging.debug(exception_string)
            raise ValueError(exception_string)

        for key in self.property_required_keys:
            if key not in properties:
                exception_string = (
                    "FileObjectStore - _validate_properties: Missing required"
                    + f" key: {key}."
                )
                logging.debug(exception_string)
                raise KeyError(exception_string)
            if properties.get(key) is None:
                exception_string = (
                    "FileObjectStore - _validate_properties: Value for key:"
                    + f" {key} is none."
                )
                logging.debug(exception_string)
                raise ValueError(exception_string)

        branch = properties["store_default_branch"]
        level = properties["store_compression_level"]
        max_size = properties["store_max_object_size"]
        if not isinstance(branch, str) or branch.strip() == "" or any(
            ch.isspace() or ch == "\0" for ch in branch
        ):
            exception_string = (
                "FileObjectStore - _validate_properties: store_default_branch must be"
                + f" a non-empty name without whitespace, got: {branch!r}"
            )
            logging.debug(exception_string)
            raise ValueError(exception_string)
        if isinstance(level, bool) or not isinstance(level, int) or not -1 <= level <= 9:
            exception_string = (
                "FileObjectStore - _validate_properties: store_compression_level must"
                + f" be an integer from -1 to 9, got: {level!r}"
            )
            logging.debug(exception_string)
            raise ValueError(exception_string)
        if isinstance(max_size, bool) or not isinstance(max_size, int) or max_size < 1:
            exception_string = (
                "FileObjectStore - _validate_properties: store_max_object_size must be"
                + f" a positive integer, got: {max_size!r}"
            )
            logging.debug(exception_string)
            raise ValueError(exception_string)
        if not isinstance(properties["store_verify_on_read"], bool):
            exception_string = (
                "FileObjectStore - _validate_properties: store_verify_on_read must be"
                + f" a boolean, got: {properties['store_verify_on_read']!r}"
            )
            logging.debug(exception_string)
            raise ValueError(exception_string)
        return properties

    # Public API / ObjectStore Interface Methods

    def put(self, obj):
        oid = address(obj.kind, obj.body)
        logging.debug(
            "FileObjectStore - put: Request to put %s object with id: %s",
            obj.kind.value,
            oid,
        )
        abs_file_path = self._build_path(oid)

        # Files are stored once and only once
        if os.path.isfile(abs_file_path):
            logging.debug(
                "FileObjectStore - put: Object already exists at: %s, skipping write.",
                abs_file_path,
            )
            return oid

        data = pack(encode_object(obj), self.compression_level)
        self._create_path(os.path.dirname(abs_file_path))
        self.write_atomically(abs_file_path, data)
        logging.info(
            "FileObjectStore - put: Successfully stored %s object: %s",
            obj.kind.value,
            oid,
        )
        return oid

    def get(self, oid):
        logging.debug("FileObjectStore - get: Request to get object: %s", oid)
        check_oid(oid)
        abs_file_path = self._build_path(oid)
        try:
            with open(abs_file_path, "rb") as obj_file:
                compressed = obj_file.read()
        except FileNotFoundError as fnfe:
            exception_string = f"FileObjectStore - get: No object found for id: {oid}"
            logging.error(exception_string)
            raise ObjectNotFound(exception_string, oid=oid) from fnfe

        try:
            obj = decode_object(
                unpack(compressed, MAX_HEADER_LENGTH + self.max_object_size),
                self.max_object_size,
            )
        except ObjectStoreError as ose:
            exception_string = (
                f"FileObjectStore - get: Object {oid} at {abs_file_path} is corrupt."
                + f" {type(ose).__name__}: {ose}"
            )
            logging.error(exception_string)
            raise CorruptObject(exception_string, oid=oid, errors=ose) from ose

        if self.verify_on_read:
            computed_oid = address(obj.kind, obj.body)
            if computed_oid != oid:
                exception_string = (
                    f"FileObjectStore - get: Object {oid} at {abs_file_path} is corrupt."
                    + f" Its content hashes to: {computed_oid}"
                )
                logging.error(exception_string)
                raise CorruptObject(exception_string, oid=oid)

        logging.info("FileObjectStore - get: Retrieved %s object: %s", obj.kind.value, oid)
        return obj

    def exists(self, oid):
        check_oid(oid)
        return os.path.isfile(self._build_path(oid))

    # FileObjectStore Core Methods

    def object_path(self, oid):
        """Return the absolute path an object id is stored at.

        :param str oid: Object id.

        :return: Path of the form ``<root>/objects/<2 chars>/<38 chars>``.
        :rtype: str
        """
        check_oid(oid)
        return self._build_path(oid)

    def iter_ids(self):
        """Yield the id of every object in the store. Temporary files left behind by
        interrupted writers are skipped.

        :return: Generator of object ids.
        """
        objects_path = Path(self.objects)
        if not objects_path.is_dir():
            return
        for shard_dir in sorted(objects_path.iterdir()):
            if not shard_dir.is_dir() or len(shard_dir.name) != self.width:
                continue
            for object_file in sorted(shard_dir.iterdir()):
                oid = shard_dir.name + object_file.name
                if object_file.is_file() and len(oid) == OID_HEX_LENGTH:
                    if all(ch in "0123456789abcdef" for ch in oid):
                        yield oid

    def count(self):
        """Return the number of objects in the store.

        :rtype: int
        """
        return sum(1 for _ in self.iter_ids())

    def write_atomically(self, path, data, exclusive=False):
        """Write `data` to `path` so that the file is either absent, the previous
        version, or complete. The bytes are written to a temporary file in the same
        directory, flushed to disk and then renamed over `path`.

        :param str path: Destination path. Its directory must exist.
        :param bytes data: Content to write.
        :param bool exclusive: Publish with a hard link instead of a rename, so that an
            existing `path` is never replaced.

        :raises FileExistsError: If `exclusive` is set and `path` already exists.
        """
        directory = os.path.dirname(path)
        tmp, delete_tmp_file = self._mktmpfile(directory)
        tmp_renamed = False
        try:
            with tmp as tmp_file:
                tmp_file.write(data)
                tmp_file.flush()
                os.fsync(tmp_file.fileno())
            if exclusive:
                # The temporary name is removed below, the link keeps the content
                os.link(tmp.name, path)
            else:
                os.replace(tmp.name, path)
                tmp_renamed = True
            logging.debug(
                "FileObjectStore - write_atomically: Moved temp file: %s to: %s",
                tmp.name,
                path,
            )
        except Exception as err:
            exception_string = (
                f"FileObjectStore - write_atomically: failed to write: {path}."
                + f" Unexpected {err=}, {type(err)=}"
            )
            logging.error(exception_string)
            raise err
        finally:
            if not tmp_renamed:
                delete_tmp_file()
            atexit.unregister(delete_tmp_file)

    def _mktmpfile(self, path):
        """Create a temporary file at the given path ready to be written.

        :param str path: Path to the file location.

        :return: tuple - file object with a file-like interface and the function
            that deletes it.
        """
        # Physically create directory if it doesn't exist
        if os.path.exists(path) is False:
            self._create_path(path)

        tmp = NamedTemporaryFile(dir=path, prefix=self.tmp_prefix, delete=False)

        # Delete tmp file if python interpreter crashes or thread is interrupted
        def delete_tmp_file():
            if os.path.exists(tmp.name):
                os.remove(tmp.name)

        atexit.register(delete_tmp_file)

        # Ensure tmp file is created with desired permissions
        if self.fmode is not None:
            oldmask = os.umask(0)
            try:
                os.chmod(tmp.name, self.fmode)
            finally:
                os.umask(oldmask)
        return tmp, delete_tmp_file

    def _shard(self, digest):
        """Generates a list given a digest of `self.depth` number of tokens with width
        `self.width` from the first part of the digest plus the remainder.

        Example:
            ['bd', '9dbf5aae1a3862dd1526723246b20206e5fc37']

        :param str digest: The string to be divided into tokens.

        :return: A list containing the tokens of fixed width.
        :rtype: list
        """

        def compact(items):
            """Return only truthy elements of `items`."""
            return [item for item in items if item]

        # This creates a list of `depth` number of tokens with width
        # `width` from the first part of the id plus the remainder.
        hierarchical_list = compact(
            [digest[i * self.width : self.width * (i + 1)] for i in range(self.depth)]
            + [digest[self.depth * self.width :]]
        )

        return hierarchical_list

    def _build_path(self, oid):
        """Build the absolute file path for a given object id.

        :param str oid: An object id to build a file path for.

        :return: An absolute file path for the specified object id.
        :rtype: str
        """
        paths = self._shard(oid)
        return os.path.join(self.objects, *paths)

    def _create_path(self, path):
        """Physically create the folder path (and all intermediate ones) on disk.

        :param str path: The path to create.
        :raises AssertionError: If the path already exists but is not a directory.
        """
        try:
            os.makedirs(path, self.dmode)
        except FileExistsError:
            assert os.path.isdir(path), f"expected {path} to be a directory"


class Stream(object):
    """Common interface for file-like objects.

    The input `obj` can be a file-like object or a path to a file. If `obj` is
    a path to a file, then it will be opened until :meth:`close` is called.
    If `obj` is a file-like object, then its original position will be
    restored when :meth:`close` is called instead of closing the object
    automatically. Closing of the stream is deferred to whatever process passed
    the stream in.

    Successive readings of the stream is supported without having to manually
    set its position back to ``0``.
    """

    def __init__(self, obj):
        if hasattr(obj, "read"):
            pos = obj.tell() if obj.seekable() else None
            owned = False
        elif os.path.isfile(obj):
            obj = io.open(obj, "rb")
            pos = None
            owned = True
        else:
            raise ValueError("Object must be a valid file path or a readable object")

        try:
            file_stat = os.stat(obj.name)
            buffer_size = file_stat.st_blksize
        except (AttributeError, TypeError, OSError):
            buffer_size = 8192

        self._obj = obj
        self._pos = pos
        self._owned = owned
        self._buffer_size = buffer_size

    def __iter__(self):
        """Read underlying IO object and yield results. Return object to
        original position if we didn't open it originally.
        """
        if self._pos is not None or self._owned:
            self._obj.seek(0)

        while True:
            data = self._obj.read(self._buffer_size)

            if not data:
                break

            yield data

        if self._pos is not None:
            self._obj.seek(self._pos)

    def read_all(self):
        """Return the full content of the stream as bytes."""
        return b"".join(
            chunk if isinstance(chunk, bytes) else chunk.encode("utf-8")
            for chunk in self
        )

    def close(self):
        """Close underlying IO object if we opened it, else return it to
        original position.
        """
        if self._owned:
            self._obj.close()
        elif self._pos is not None:
            self._obj.seek(self._pos)
