"""ObjectStore is a content-addressable object database modeled on the loose object
storage of a distributed version-control system.

Some properties:

- Objects are immutable and never change
- Objects are named using the SHA-1 hex digest of their kind, size and content
    (thus, a content-identifier), so identical content is stored once
- Objects are zlib-compressed and sharded into directories named after the first
    two characters of their identifier
- Three kinds of objects are supported: blobs (file content), trees (sorted
    directory listings with binary child ids) and commits (metadata text)
- Objects are published with an atomic rename, so concurrent writers never
    expose a partially written object
"""

from objectstore.objectstore import ObjectStore, ObjectStoreFactory
from objectstore.objects import ObjectKind, StoredObject
from objectstore.repository import Repository
from objectstore.tree import TreeEntry

__all__ = (
    "ObjectStore",
    "ObjectStoreFactory",
    "ObjectKind",
    "StoredObject",
    "Repository",
    "TreeEntry",
)
__version__ = "1.0.0"
