"""Test module for FileObjectStore core, configuration and supporting methods"""

import os
import threading
from pathlib import Path
import pytest
import yaml
from objectstore.fileobjectstore import FileObjectStore, Stream
from objectstore.objects import ObjectKind, StoredObject, encode_object, pack
from objectstore.objectstore_exceptions import CorruptObject, ObjectNotFound

# pylint: disable=W0212


def test_init_directories_created(store):
    """Confirm that the objects and refs directories and config file are created."""
    assert os.path.isdir(store.root + "/objects")
    assert os.path.isdir(store.root + "/refs/heads")
    assert os.path.isfile(store.root + "/objectstore.yaml")


def test_init_existing_store_matching_props(props, store):
    """Check a second FileObjectStore with the same properties opens the store."""
    blob_id = store.put(StoredObject(ObjectKind.BLOB, b"kept"))
    second_store = FileObjectStore(props)
    assert second_store.exists(blob_id)


def test_init_existing_store_mismatched_props(props, store):
    """Check properties that differ from the stored config raise ValueError."""
    assert store.default_branch == "master"
    props["store_default_branch"] = "main"
    with pytest.raises(ValueError):
        FileObjectStore(props)


def test_init_conflicting_objects_directory(tmp_path):
    """Check an '/objects' directory without config raises RuntimeError."""
    store_path = tmp_path / "conflict"
    (store_path / "objects").mkdir(parents=True)
    props = {
        "store_path": store_path.as_posix(),
        "store_default_branch": "master",
        "store_compression_level": -1,
        "store_max_object_size": 1024,
        "store_verify_on_read": True,
    }
    with pytest.raises(RuntimeError):
        FileObjectStore(props)


def test_init_no_properties():
    """Check FileObjectStore raises ValueError when no properties are given."""
    with pytest.raises(ValueError):
        FileObjectStore()


def test_validate_properties_missing_key(props, store):
    """Check a missing key raises KeyError."""
    del props["store_max_object_size"]
    with pytest.raises(KeyError):
        store._validate_properties(props)


def test_validate_properties_none_value(props, store):
    """Check a None value raises ValueError."""
    props["store_compression_level"] = None
    with pytest.raises(ValueError):
        store._validate_properties(props)


def test_validate_properties_invalid_values(props, store):
    """Check values of the wrong type or range raise ValueError."""
    for key, value in [
        ("store_compression_level", 10),
        ("store_compression_level", "9"),
        ("store_max_object_size", 0),
        ("store_default_branch", "my branch"),
        ("store_verify_on_read", "yes"),
    ]:
        invalid_props = dict(props)
        invalid_props[key] = value
        with pytest.raises(ValueError):
            store._validate_properties(invalid_props)


def test_validate_properties_not_dict(store):
    """Check a non-dictionary argument raises ValueError."""
    with pytest.raises(ValueError):
        store._validate_properties(["store_path"])


def test_load_properties(props, store):
    """Check properties are read back from objectstore.yaml."""
    loaded = FileObjectStore.load_properties(store.root)
    assert loaded == props


def test_load_properties_missing(tmp_path):
    """Check loading properties without a config file raises FileNotFoundError."""
    with pytest.raises(FileNotFoundError):
        FileObjectStore.load_properties(tmp_path.as_posix())


def test_config_file_is_yaml(store):
    """Check the config file parses as YAML with the expected keys."""
    with open(store.root + "/objectstore.yaml", "r", encoding="utf-8") as yaml_file:
        yaml_data = yaml.safe_load(yaml_file)
    assert yaml_data["store_default_branch"] == "master"
    assert yaml_data["store_compression_level"] == -1
    assert yaml_data["store_max_object_size"] == 1024 * 1024
    assert yaml_data["store_verify_on_read"] is True


def test_shard(store):
    """Check an id is split into a 2 character directory and a 38 character name."""
    oid = "aa11bbccddeeff00112233445566778899aabbff"
    assert store._shard(oid) == ["aa", "11bbccddeeff00112233445566778899aabbff"]


def test_object_path_fan_out(store):
    """Check the object path is objects/<first 2 chars>/<remaining 38 chars>."""
    oid = "aa11bbccddeeff00112233445566778899aabbff"
    path = Path(store.object_path(oid))
    assert path.parent.name == "aa"
    assert path.name == "11bbccddeeff00112233445566778899aabbff"
    assert path.parent.parent == Path(store.objects)


def test_object_path_invalid_id(store):
    """Check an invalid id raises ValueError."""
    with pytest.raises(ValueError):
        store.object_path("aa11")


def test_put_returns_id(store, blobs):
    """Check put returns the expected content id."""
    for content, oid in blobs.items():
        assert store.put(StoredObject(ObjectKind.BLOB, content)) == oid


def test_put_writes_compressed_encoding(store):
    """Check the stored file is the zlib-compressed encoded object."""
    obj = StoredObject(ObjectKind.BLOB, b"hello\n")
    oid = store.put(obj)
    with open(store.object_path(oid), "rb") as obj_file:
        assert obj_file.read() == pack(encode_object(obj))


def test_put_exists_get(store, blobs):
    """Check stored objects exist and can be read back."""
    for content in blobs:
        obj = StoredObject(ObjectKind.BLOB, content)
        oid = store.put(obj)
        assert store.exists(oid)
        assert store.get(oid) == obj


def test_put_duplicate_single_file(store):
    """Check storing the same object twice yields one id and one file."""
    obj = StoredObject(ObjectKind.BLOB, b"duplicate me")
    first_id = store.put(obj)
    mtime = os.stat(store.object_path(first_id)).st_mtime_ns
    second_id = store.put(obj)
    assert first_id == second_id
    assert store.count() == 1
    assert os.stat(store.object_path(first_id)).st_mtime_ns == mtime
    assert len(os.listdir(os.path.dirname(store.object_path(first_id)))) == 1


def test_put_no_tmp_files_left(store):
    """Check no temporary files remain after objects are stored."""
    for i in range(5):
        store.put(StoredObject(ObjectKind.BLOB, f"object {i}".encode("ascii")))
    for _, _, files in os.walk(store.objects):
        for file_name in files:
            assert not file_name.startswith(store.tmp_prefix)


def test_put_threads_same_object(store):
    """Check concurrent writers of the same object leave one readable object."""
    obj = StoredObject(ObjectKind.BLOB, b"x" * 100000)
    results = []

    def put_object():
        results.append(store.put(obj))

    threads = [threading.Thread(target=put_object) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert len(set(results)) == 1
    assert store.count() == 1
    assert store.get(results[0]) == obj


def test_put_compression_level(props):
    """Check objects written with compression disabled still read back."""
    props["store_compression_level"] = 0
    store = FileObjectStore(props)
    obj = StoredObject(ObjectKind.BLOB, b"a" * 1000)
    oid = store.put(obj)
    assert os.path.getsize(store.object_path(oid)) > 1000
    assert store.get(oid) == obj


def test_get_not_found(store):
    """Check get raises ObjectNotFound for an id that was never stored."""
    oid = "0123456789abcdef0123456789abcdef01234567"
    with pytest.raises(ObjectNotFound) as excinfo:
        store.get(oid)
    assert excinfo.value.oid == oid


def test_get_not_found_writes_nothing(store):
    """Check a failed get does not create files or directories."""
    before = sorted(os.walk(store.root))
    with pytest.raises(ObjectNotFound):
        store.get("0123456789abcdef0123456789abcdef01234567")
    assert sorted(os.walk(store.root)) == before


def test_get_truncated_object(store):
    """Check truncating a stored object by one byte raises CorruptObject."""
    oid = store.put(StoredObject(ObjectKind.BLOB, b"what is up, doc?"))
    path = store.object_path(oid)
    with open(path, "rb") as obj_file:
        data = obj_file.read()
    os.chmod(path, 0o664)
    with open(path, "wb") as obj_file:
        obj_file.write(data[:-1])
    with pytest.raises(CorruptObject) as excinfo:
        store.get(oid)
    assert excinfo.value.oid == oid


def test_get_bad_header(store):
    """Check a stored object with an invalid header raises CorruptObject."""
    oid = "0123456789abcdef0123456789abcdef01234567"
    path = store.object_path(oid)
    os.makedirs(os.path.dirname(path))
    with open(path, "wb") as obj_file:
        obj_file.write(pack(b"blob 10\0short"))
    with pytest.raises(CorruptObject):
        store.get(oid)


def test_get_content_does_not_match_id(store):
    """Check a valid object stored under the wrong id raises CorruptObject."""
    oid = "0123456789abcdef0123456789abcdef01234567"
    path = store.object_path(oid)
    os.makedirs(os.path.dirname(path))
    with open(path, "wb") as obj_file:
        obj_file.write(pack(b"blob 3\0abc"))
    with pytest.raises(CorruptObject):
        store.get(oid)


def test_get_unverified_content(props):
    """Check verification can be disabled through the properties."""
    props["store_verify_on_read"] = False
    store = FileObjectStore(props)
    oid = "0123456789abcdef0123456789abcdef01234567"
    path = store.object_path(oid)
    os.makedirs(os.path.dirname(path))
    with open(path, "wb") as obj_file:
        obj_file.write(pack(b"blob 3\0abc"))
    assert store.get(oid) == StoredObject(ObjectKind.BLOB, b"abc")


def test_get_exceeds_max_object_size(props):
    """Check objects larger than store_max_object_size raise CorruptObject."""
    props["store_max_object_size"] = 10
    store = FileObjectStore(props)
    oid = store.put(StoredObject(ObjectKind.BLOB, b"eleven byte"))
    with pytest.raises(CorruptObject):
        store.get(oid)


def test_exists_missing(store):
    """Check exists is False for an id that was never stored."""
    assert not store.exists("0123456789abcdef0123456789abcdef01234567")


def test_iter_ids_skips_tmp_files(store):
    """Check iter_ids lists stored objects and ignores orphaned temporary files."""
    oid = store.put(StoredObject(ObjectKind.BLOB, b"listed"))
    shard_dir = os.path.dirname(store.object_path(oid))
    with open(os.path.join(shard_dir, store.tmp_prefix + "orphan"), "wb") as orphan:
        orphan.write(b"partial")
    assert list(store.iter_ids()) == [oid]
    assert store.count() == 1


def test_write_atomically_replaces(store):
    """Check write_atomically replaces an existing file."""
    path = os.path.join(store.root, "HEAD")
    store.write_atomically(path, b"first\n")
    store.write_atomically(path, b"second\n")
    with open(path, "rb") as head_file:
        assert head_file.read() == b"second\n"
    assert not [
        name for name in os.listdir(store.root) if name.startswith(store.tmp_prefix)
    ]


def test_stream_from_path(tmp_path):
    """Check Stream reads a file path and closes it."""
    path = tmp_path / "data.bin"
    path.write_bytes(b"0123456789" * 1000)
    stream = Stream(str(path))
    assert stream.read_all() == b"0123456789" * 1000
    stream.close()


def test_stream_restores_position(tmp_path):
    """Check Stream returns a caller's stream to its original position."""
    path = tmp_path / "data.bin"
    path.write_bytes(b"abcdef")
    with open(path, "rb") as input_stream:
        input_stream.seek(3)
        stream = Stream(input_stream)
        assert stream.read_all() == b"abcdef"
        stream.close()
        assert input_stream.tell() == 3


def test_stream_invalid_object():
    """Check Stream rejects objects that are neither paths nor readable."""
    with pytest.raises(ValueError):
        Stream("/path/that/does/not/exist")


def test_load_properties_invalid_yaml(store):
    """Check a configuration file that is not valid YAML raises ValueError."""
    with open(store.root + "/objectstore.yaml", "w", encoding="utf-8") as yaml_file:
        yaml_file.write("store_default_branch: [unclosed\n")
    with pytest.raises(ValueError):
        FileObjectStore.load_properties(store.root)


def test_load_properties_missing_key(store):
    """Check a configuration file without a required key raises ValueError."""
    with open(store.root + "/objectstore.yaml", "w", encoding="utf-8") as yaml_file:
        yaml_file.write('store_default_branch: "master"\n')
    with pytest.raises(ValueError):
        FileObjectStore.load_properties(store.root)


def test_init_config_written_concurrently(props, monkeypatch):
    """Check a store initializes when another process writes a matching configuration
    file between the verification and the write."""
    write_properties = FileObjectStore._write_properties

    def write_after_other_process(self, properties):
        monkeypatch.setattr(FileObjectStore, "_write_properties", write_properties)
        FileObjectStore(properties)
        write_properties(self, properties)

    monkeypatch.setattr(
        FileObjectStore, "_write_properties", write_after_other_process
    )
    store = FileObjectStore(props)
    assert store.load_properties(store.root) == props
    assert os.path.isdir(store.objects)
    assert not [
        name for name in os.listdir(store.root) if name.startswith(store.tmp_prefix)
    ]


def test_init_config_written_concurrently_mismatch(props, monkeypatch):
    """Check a store refuses to initialize when another process concurrently writes a
    configuration file with different properties."""
    write_properties = FileObjectStore._write_properties
    other_props = dict(props, store_default_branch="main")

    def write_after_other_process(self, properties):
        monkeypatch.setattr(FileObjectStore, "_write_properties", write_properties)
        FileObjectStore(other_props)
        write_properties(self, properties)

    monkeypatch.setattr(
        FileObjectStore, "_write_properties", write_after_other_process
    )
    with pytest.raises(ValueError):
        FileObjectStore(props)
    assert FileObjectStore.load_properties(props["store_path"]) == other_props


def test_write_atomically_exclusive(store):
    """Check an exclusive write never replaces an existing file."""
    path = os.path.join(store.root, "HEAD")
    store.write_atomically(path, b"first\n", exclusive=True)
    with pytest.raises(FileExistsError):
        store.write_atomically(path, b"second\n", exclusive=True)
    with open(path, "rb") as head_file:
        assert head_file.read() == b"first\n"
    assert not [
        name for name in os.listdir(store.root) if name.startswith(store.tmp_prefix)
    ]
