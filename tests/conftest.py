"""Pytest overall configuration file for fixtures"""

import pytest
from objectstore.fileobjectstore import FileObjectStore
from objectstore.repository import Repository


@pytest.fixture(name="props")
def init_props(tmp_path):
    """Properties to initialize an ObjectStore."""
    directory = tmp_path / "project" / ".objectstore"
    directory.mkdir(parents=True)
    objectstore_path = directory.as_posix()
    # Note, objects generated via tests are placed in a temporary folder
    # with the 'directory' parameter above appended
    properties = {
        "store_path": objectstore_path,
        "store_default_branch": "master",
        "store_compression_level": -1,
        "store_max_object_size": 1024 * 1024,
        "store_verify_on_read": True,
    }
    return properties


@pytest.fixture(name="store")
def init_store(props):
    """Create FileObjectStore instance for all tests."""
    store = FileObjectStore(props)
    return store


@pytest.fixture(name="repo")
def init_repo(tmp_path):
    """Create an initialized Repository with default properties."""
    return Repository.init(tmp_path / "repo")


@pytest.fixture(name="blobs")
def init_blobs():
    """Shared test harness data: blob contents and their ids."""
    test_blobs = {
        b"what is up, doc?": "bd9dbf5aae1a3862dd1526723246b20206e5fc37",
        b"hello\n": "ce013625030ba8dba906f756967f9e9ca394464a",
        b"": "e69de29bb2d1d6434b8b29ae775ad8c2e48c5391",
    }
    return test_blobs
