import pytest

from tanggap.db.models import MediaType
from tanggap.services.media import (
    MediaStore,
    MediaTooLargeError,
    extension_for,
    format_bytes,
)


class TestMediaStore:
    def test_save_writes_under_type_directory(self, media_store):
        stored = media_store.save(b"audio-bytes", MediaType.AUDIO, "audio/ogg; codecs=opus")

        assert stored.file_path.startswith("audio/")
        assert stored.file_name.endswith(".ogg")
        assert stored.file_size == len(b"audio-bytes")
        assert media_store.full_path(stored.file_path).read_bytes() == b"audio-bytes"

    def test_size_limit_per_type(self, tmp_path):
        store = MediaStore(root=tmp_path, limits={MediaType.IMAGE: 4})
        with pytest.raises(MediaTooLargeError):
            store.save(b"12345", MediaType.IMAGE, "image/jpeg")
        assert store.save(b"1234", MediaType.IMAGE, "image/jpeg").file_size == 4

    def test_path_traversal_is_refused(self, media_store):
        with pytest.raises(ValueError):
            media_store.full_path("../../etc/passwd")

    def test_delete(self, media_store):
        stored = media_store.save(b"doc", MediaType.DOCUMENT, "application/pdf")
        assert media_store.delete(stored.file_path) is True
        assert media_store.delete(stored.file_path) is False

    def test_storage_stats(self, media_store):
        media_store.save(b"abc", MediaType.IMAGE, "image/png")
        media_store.save(b"defgh", MediaType.IMAGE, "image/png")

        stats = media_store.storage_stats()

        assert stats["total_files"] == 2
        assert stats["total_size"] == 8
        assert stats["by_type"]["IMAGE"]["count"] == 2
        assert stats["by_type"]["VIDEO"]["count"] == 0


class TestHelpers:
    def test_extension_for_unknown_mime(self):
        assert extension_for(None) == ".bin"
        assert extension_for("application/x-thing") == ".bin"
        assert extension_for("IMAGE/JPEG") == ".jpg"

    def test_format_bytes(self):
        assert format_bytes(512) == "512 B"
        assert format_bytes(2048) == "2.00 KB"
        assert format_bytes(5 * 1024 * 1024) == "5.00 MB"
