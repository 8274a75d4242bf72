"""Tests for on-disk chunk storage helpers."""

import pytest

from chunkstore.checksum_validator import (
    IncrementalChecksumCalculator,
    compute_checksum,
    ensure_algorithm,
    verify_checksum,
)
from chunkstore.chunk_storage import (
    delete_upload,
    get_chunk_path,
    list_upload_chunks,
    list_upload_identities,
    read_chunk_streaming,
    read_manifest,
    validate_upload_identity,
    write_chunk,
    write_manifest,
)
from common.exceptions import InvalidUploadIdentity


class TestValidateUploadIdentity:

    @pytest.mark.parametrize("identity", ["abc123", "d41d8cd98f00b204e9800998ecf8427e", "a-b_c"])
    def test_accepts_safe_identities(self, identity):
        assert validate_upload_identity(identity) == identity

    @pytest.mark.parametrize("identity", ["", "../etc", "a/b", "a b", "x" * 129, "a.b"])
    def test_rejects_unsafe_identities(self, identity):
        with pytest.raises(InvalidUploadIdentity):
            validate_upload_identity(identity)


class TestChunkFiles:

    def test_write_and_stream_chunk(self, tmp_path):
        data = b"x" * 1000
        location = write_chunk(tmp_path, "up1", 3, data)

        assert location == str(get_chunk_path(tmp_path, "up1", 3))
        pieces = list(read_chunk_streaming(get_chunk_path(tmp_path, "up1", 3), piece_size=300))
        assert [len(p) for p in pieces] == [300, 300, 300, 100]
        assert b"".join(pieces) == data

    def test_rewrite_replaces_content(self, tmp_path):
        write_chunk(tmp_path, "up1", 0, b"first")
        write_chunk(tmp_path, "up1", 0, b"second")

        assert get_chunk_path(tmp_path, "up1", 0).read_bytes() == b"second"

    def test_no_temporary_files_left(self, tmp_path):
        write_chunk(tmp_path, "up1", 0, b"data")

        names = [p.name for p in (tmp_path / "up1").iterdir()]
        assert names == ["0.chk"]

    def test_list_upload_chunks_ignores_other_files(self, tmp_path):
        write_chunk(tmp_path, "up1", 0, b"a")
        write_chunk(tmp_path, "up1", 2, b"c")
        write_manifest(tmp_path, "up1", 3, "data.csv")
        (tmp_path / "up1" / ".0.chk.abc.tmp").write_bytes(b"partial")

        chunks = list_upload_chunks(tmp_path, "up1")

        assert sorted(chunks) == [0, 2]

    def test_list_upload_chunks_missing_upload(self, tmp_path):
        assert list_upload_chunks(tmp_path, "nothing") == {}

    def test_read_missing_chunk_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            list(read_chunk_streaming(tmp_path / "missing.chk"))


class TestManifest:

    def test_round_trip(self, tmp_path):
        write_manifest(tmp_path, "up1", 4, "report.csv")

        manifest = read_manifest(tmp_path, "up1")

        assert manifest == {"upload_identity": "up1", "total_expected": 4, "logical_name": "report.csv"}

    def test_missing_manifest(self, tmp_path):
        assert read_manifest(tmp_path, "up1") is None

    def test_list_identities_and_delete(self, tmp_path):
        write_chunk(tmp_path, "up1", 0, b"a")
        write_chunk(tmp_path, "up2", 0, b"b")

        assert sorted(list_upload_identities(tmp_path)) == ["up1", "up2"]
        assert delete_upload(tmp_path, "up1") is True
        assert delete_upload(tmp_path, "up1") is False
        assert list_upload_identities(tmp_path) == ["up2"]

    def test_list_identities_without_root(self, tmp_path):
        assert list_upload_identities(tmp_path / "absent") == []


class TestChecksums:

    def test_md5_default(self):
        assert compute_checksum(b"") == "d41d8cd98f00b204e9800998ecf8427e"

    def test_verify_is_case_insensitive(self):
        assert verify_checksum(b"", "D41D8CD98F00B204E9800998ECF8427E")
        assert not verify_checksum(b"x", "d41d8cd98f00b204e9800998ecf8427e")

    def test_incremental_matches_one_shot(self):
        calculator = IncrementalChecksumCalculator("sha256")
        calculator.update(b"hello ")
        calculator.update(b"world")

        assert calculator.finalize() == compute_checksum(b"hello world", "sha256")

    def test_update_after_finalize(self):
        calculator = IncrementalChecksumCalculator()
        calculator.finalize()
        with pytest.raises(ValueError):
            calculator.update(b"late")

    def test_ensure_algorithm(self):
        assert ensure_algorithm("MD5") == "md5"
        with pytest.raises(ValueError):
            ensure_algorithm("not-a-hash")
