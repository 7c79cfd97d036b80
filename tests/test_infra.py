"""
Tests for the small infrastructure pieces: Workspace, FileStore, HttpClient.
"""

import hashlib
import json
import threading
from unittest.mock import MagicMock

import pytest
import requests

from formulary.infra.file_store import CorruptStoreError, FileStore
from formulary.infra.http_client import HttpClient
from formulary.infra.workspace import Workspace


class TestWorkspace:

    def test_removed_on_exit(self, tmp_path):
        with Workspace("mxp", tmp_path) as ws:
            path = ws.path
            (path / "file").write_text("x")
            assert path.parent == tmp_path
            assert path.name.startswith("formulary-mxp-")
        assert not path.exists()

    def test_removed_on_error(self, tmp_path):
        with pytest.raises(RuntimeError):
            with Workspace("mxp", tmp_path) as ws:
                path = ws.path
                raise RuntimeError("boom")
        assert not path.exists()

    def test_never_shared(self, tmp_path):
        with Workspace("mxp", tmp_path) as a, Workspace("mxp", tmp_path) as b:
            assert a.path != b.path


class TestFileStore:

    def test_set_get_delete(self, tmp_path):
        store = FileStore(tmp_path / "state" / "receipts.json")
        assert store.get("mxp") is None
        assert not store.path.exists()

        store.set("mxp", {"version": "0.4.0"})
        assert "mxp" in store
        assert len(store) == 1
        assert json.loads(store.path.read_text()) == {"mxp": {"version": "0.4.0"}}

        assert store.delete("mxp")
        assert not store.delete("mxp")

    def test_corrupt_file_reads_empty(self, tmp_path):
        path = tmp_path / "receipts.json"
        path.write_text("{oops")
        assert FileStore(path).read() == {}

    def test_corrupt_file_is_not_overwritten(self, tmp_path):
        path = tmp_path / "receipts.json"
        path.write_text("{oops")
        store = FileStore(path)

        with pytest.raises(CorruptStoreError):
            store.set("mxp", {"version": "0.4.0"})
        with pytest.raises(CorruptStoreError):
            store.delete("mxp")
        with pytest.raises(CorruptStoreError):
            store.read(strict=True)
        assert path.read_text() == "{oops"

    def test_non_object_file_is_not_overwritten(self, tmp_path):
        path = tmp_path / "receipts.json"
        path.write_text("[1, 2]")
        with pytest.raises(CorruptStoreError):
            FileStore(path).set("mxp", {})
        assert path.read_text() == "[1, 2]"

    def test_stores_for_same_file_share_lock(self, tmp_path):
        a = FileStore(tmp_path / "receipts.json")
        b = FileStore(tmp_path / "sub" / ".." / "receipts.json")
        assert a._lock is b._lock
        assert FileStore(tmp_path / "other.json")._lock is not a._lock

    def test_concurrent_writers_keep_every_key(self, tmp_path):
        path = tmp_path / "receipts.json"
        names = [f"pkg{i}" for i in range(16)]
        start = threading.Barrier(len(names))

        def write(name):
            start.wait()
            FileStore(path).set(name, {"version": "1.0"})

        threads = [threading.Thread(target=write, args=(name,)) for name in names]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(FileStore(path).read()) == sorted(names)

    def test_no_temp_files_left(self, tmp_path):
        store = FileStore(tmp_path / "receipts.json")
        store.set("a", 1)
        store.set("b", 2)
        assert [p.name for p in tmp_path.iterdir()] == ["receipts.json"]


class TestHttpClient:

    def test_probe_error(self):
        client = HttpClient()
        client.session = MagicMock()
        client.session.head.side_effect = requests.ConnectionError("refused")
        headers, error = client.probe("https://e.com/x.tar.gz")
        assert error == "refused"
        assert not headers

    def test_download_hashes_content(self, tmp_path):
        response = MagicMock()
        response.iter_content.return_value = [b"abc", b"", b"def"]
        response.__enter__.return_value = response
        client = HttpClient()
        client.session = MagicMock()
        client.session.get.return_value = response

        dest = tmp_path / "download"
        digest = client.download("https://e.com/x.tar.gz", dest)

        assert dest.read_bytes() == b"abcdef"
        assert digest == hashlib.sha256(b"abcdef").hexdigest()
        response.raise_for_status.assert_called_once()
