"""Unit tests for dump artifact paths and decompression."""

import gzip
from pathlib import Path, PurePosixPath

import pytest

from dbsync.core.exceptions import FileSystemError
from dbsync.services.artifacts import (
    ArtifactState,
    DumpArtifact,
    decompress_file,
    decompressed_path,
    format_bytes,
    new_token,
)


class TestDumpArtifact:
    """Tests for path derivation."""

    def test_paths(self):
        artifact = DumpArtifact(token="abc123")

        assert artifact.remote_raw == PurePosixPath("/tmp/dbsync-abc123.sql")
        assert artifact.remote_compressed == PurePosixPath("/tmp/dbsync-abc123.sql.gz")
        assert artifact.local_compressed == Path("/tmp/local-dbsync-abc123.sql.gz")
        assert artifact.local_decompressed == Path("/tmp/local-dbsync-abc123.sql")

    def test_decompressed_keeps_raw_base_name(self):
        artifact = DumpArtifact.for_run()
        assert artifact.local_decompressed.name.endswith(artifact.remote_raw.name)

    def test_token_format(self):
        token = new_token()
        assert len(token) == 32
        int(token, 16)

    def test_different_tokens_never_collide(self):
        first = DumpArtifact(token="a" * 32)
        second = DumpArtifact(token="b" * 32)

        first_paths = {
            str(first.remote_raw), str(first.remote_compressed),
            str(first.local_compressed), str(first.local_decompressed),
        }
        second_paths = {
            str(second.remote_raw), str(second.remote_compressed),
            str(second.local_compressed), str(second.local_decompressed),
        }
        assert first_paths.isdisjoint(second_paths)

    def test_for_run_uses_fresh_tokens(self):
        assert DumpArtifact.for_run().token != DumpArtifact.for_run().token

    def test_custom_directories(self, tmp_path):
        artifact = DumpArtifact(token="t", remote_dir=PurePosixPath("/var/tmp"), local_dir=tmp_path)
        assert artifact.remote_raw == PurePosixPath("/var/tmp/dbsync-t.sql")
        assert artifact.local_compressed == tmp_path / "local-dbsync-t.sql.gz"


class TestArtifactState:
    def test_starts_planned(self):
        assert DumpArtifact(token="t").state is ArtifactState.PLANNED

    def test_advances_in_order(self):
        artifact = DumpArtifact(token="t")
        for state in ArtifactState:
            artifact.advance(state)
        assert artifact.state is ArtifactState.CONSUMED

    def test_cannot_go_back(self):
        artifact = DumpArtifact(token="t")
        artifact.advance(ArtifactState.LOCAL_COMPRESSED)
        with pytest.raises(ValueError):
            artifact.advance(ArtifactState.REMOTE_RAW)


class TestDecompress:
    """Tests for local gzip handling."""

    def test_decompressed_path(self):
        assert decompressed_path(Path("/tmp/x.sql.gz")) == Path("/tmp/x.sql")
        assert decompressed_path(Path("/tmp/x.sql")) == Path("/tmp/x.sql")

    def test_decompress_replaces_archive(self, tmp_path):
        archive = tmp_path / "x.sql.gz"
        with gzip.open(archive, "wb") as f:
            f.write(b"CREATE TABLE t (id int);\n")

        result = decompress_file(archive)

        assert result == tmp_path / "x.sql"
        assert result.read_bytes() == b"CREATE TABLE t (id int);\n"
        assert not archive.exists()

    def test_overwrites_existing_output(self, tmp_path):
        archive = tmp_path / "x.sql.gz"
        with gzip.open(archive, "wb") as f:
            f.write(b"new")
        (tmp_path / "x.sql").write_bytes(b"old contents")

        assert decompress_file(archive).read_bytes() == b"new"

    def test_corrupt_archive(self, tmp_path):
        archive = tmp_path / "x.sql.gz"
        archive.write_bytes(b"not gzip at all")

        with pytest.raises(FileSystemError):
            decompress_file(archive)
        assert not (tmp_path / "x.sql").exists()
        assert archive.exists()

    def test_missing_archive(self, tmp_path):
        with pytest.raises(FileSystemError):
            decompress_file(tmp_path / "missing.sql.gz")

    def test_plain_file_untouched(self, tmp_path):
        plain = tmp_path / "x.sql"
        plain.write_text("SELECT 1;")
        assert decompress_file(plain) == plain


class TestFormatBytes:
    def test_units(self):
        assert format_bytes(512) == "512.0 B"
        assert format_bytes(1536) == "1.5 KB"
        assert format_bytes(5 * 1024 * 1024) == "5.0 MB"
