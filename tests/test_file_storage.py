"""
Tests for avatar file storage backends
"""

import pytest

from nivalus_core.file_storage import InMemoryFileStorage, LocalFileStorage


class TestLocalFileStorage:

    def test_store_and_delete(self, tmp_path):
        storage = LocalFileStorage(tmp_path / "avatars", url_prefix="/assets/avatars/")

        url = storage.store(b"\x89PNG data", "avatar-1.png")

        assert url == "/assets/avatars/avatar-1.png"
        assert (tmp_path / "avatars" / "avatar-1.png").read_bytes() == b"\x89PNG data"

        assert storage.delete(url)
        assert not (tmp_path / "avatars" / "avatar-1.png").exists()
        assert not storage.delete(url)

    def test_file_name_cannot_escape_base_dir(self, tmp_path):
        storage = LocalFileStorage(tmp_path / "avatars")

        url = storage.store(b"x", "../../evil.png")

        assert url == "/assets/avatars/evil.png"
        assert (tmp_path / "avatars" / "evil.png").exists()
        assert not (tmp_path / "evil.png").exists()

    def test_foreign_url_ignored(self, tmp_path):
        storage = LocalFileStorage(tmp_path)
        assert not storage.delete("/elsewhere/file.png")

    def test_invalid_name_rejected(self, tmp_path):
        storage = LocalFileStorage(tmp_path)
        with pytest.raises(ValueError):
            storage.store(b"x", "..")


class TestInMemoryFileStorage:

    def test_store_get_delete(self):
        storage = InMemoryFileStorage()
        url = storage.store(b"abc", "avatar-2.jpg")

        assert storage.get(url) == b"abc"
        assert storage.delete(url)
        assert storage.get(url) is None
        assert not storage.delete(url)
