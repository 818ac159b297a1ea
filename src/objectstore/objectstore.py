"""ObjectStore Interface"""
from abc import ABC, abstractmethod
import importlib.metadata
import importlib.util


class ObjectStore(ABC):
    """ObjectStore is a content-addressable object database that addresses every
    object by the hex digest of its kind, size and content."""

    @staticmethod
    def version():
        """Return the version number"""
        __version__ = importlib.metadata.version("objectstore")
        return __version__

    @abstractmethod
    def put(self, obj):
        """Store an object and return its id. The id is derived from the object's kind
        and body, so storing the same object twice yields the same id and leaves a
        single copy in the store; a second `put` does not rewrite the existing copy.

        Objects are written to a temporary location next to their permanent address
        and atomically moved into place, so a reader never observes a partially
        written object and concurrent writers of the same object race harmlessly.

        :param StoredObject obj: Object to store.

        :return: str - Object id (40 lowercase hex characters).
        """
        raise NotImplementedError()

    @abstractmethod
    def get(self, oid):
        """Read, inflate and decode an object. `get` never writes to the store.

        :param str oid: Object id.

        :raises ObjectNotFound: If nothing is stored under `oid`.
        :raises CorruptObject: If the stored bytes cannot be inflated, decoded or
            verified.

        :return: StoredObject - The object stored under `oid`.
        """
        raise NotImplementedError()

    @abstractmethod
    def exists(self, oid):
        """Check whether an object is stored under `oid` without reading it.

        :param str oid: Object id.

        :return: bool - `True` if the object exists.
        """
        raise NotImplementedError()


class ObjectStoreFactory:
    """A factory class for creating `ObjectStore`-like objects.

    This factory class provides a method to retrieve an `ObjectStore` object based on a
    given module (e.g., "objectstore.fileobjectstore") and class name
    (e.g., "FileObjectStore").
    """

    @staticmethod
    def get_objectstore(module_name, class_name, properties=None):
        """Get an `ObjectStore`-like object based on the specified `module_name` and
        `class_name`.

        :param str module_name: Name of the module (e.g., "objectstore.fileobjectstore").
        :param str class_name: Name of the class in the given module
            (e.g., "FileObjectStore").
        :param dict properties: Desired ObjectStore properties. Example Properties
            Dictionary:
            {
                "store_path": "/home/user/project/.objectstore",
                "store_default_branch": "master",
                "store_compression_level": -1,
                "store_max_object_size": 2147483648,
                "store_verify_on_read": True
            }

        :return: ObjectStore - An object store based on the given `module_name` and
            `class_name`.

        :raises ModuleNotFoundError: If the module is not found.
        :raises AttributeError: If the class does not exist within the module.
        """
        # Validate module
        if importlib.util.find_spec(module_name) is None:
            raise ModuleNotFoundError(f"No module found for '{module_name}'")

        # Get ObjectStore
        imported_module = importlib.import_module(module_name)

        # If class is not part of module, raise error
        if hasattr(imported_module, class_name):
            objectstore_class = getattr(imported_module, class_name)
            return objectstore_class(properties=properties)
        raise AttributeError(
            f"Class name '{class_name}' is not an attribute of module '{module_name}'"
        )
