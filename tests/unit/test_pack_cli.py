"""
Unit tests for the folderzip-pack command.
"""

import zipfile

import pytest

from folderzip.archive import streamer as streamer_module
from folderzip.errors import ArchiveConstructionError
from folderzip.tools.pack_cli import build_parser, main, pack_directory


@pytest.fixture
def source_dir(tmp_path):
    """Source directory with a.txt and sub/b.txt."""
    root = tmp_path / "src"
    (root / "sub").mkdir(parents=True)
    (root / "a.txt").write_bytes(b"alpha")
    (root / "sub" / "b.txt").write_bytes(b"beta")
    return root


class TestPackDirectory:
    """Tests for pack_directory."""

    def test_writes_archive(self, source_dir, tmp_path):
        """The output file is a complete archive of the source."""
        output = tmp_path / "out.zip"

        count = pack_directory(source_dir, output)

        assert count == 2
        with zipfile.ZipFile(output) as archive:
            assert sorted(archive.namelist()) == ["a.txt", "sub/b.txt"]
            assert archive.read("sub/b.txt") == b"beta"

    def test_replaces_existing_output(self, source_dir, tmp_path):
        """An existing file is replaced only by a finished archive."""
        output = tmp_path / "out.zip"
        output.write_bytes(b"old")

        pack_directory(source_dir, output, compression_level=1)

        assert zipfile.is_zipfile(output)

    def test_failure_leaves_no_output(self, source_dir, tmp_path, monkeypatch):
        """A build that fails midway leaves neither output nor temp file."""
        output = tmp_path / "out.zip"
        opens = {"count": 0}

        def flaky(path):
            opens["count"] += 1
            # The readability check opens both files first
            if opens["count"] > 3:
                raise PermissionError(13, "Permission denied", str(path))
            return open(path, "rb")

        monkeypatch.setattr(streamer_module, "open_source", flaky)

        with pytest.raises(ArchiveConstructionError):
            pack_directory(source_dir, output)

        assert not output.exists()
        assert list(tmp_path.glob("*.tmp")) == []


class TestMain:
    """Tests for the CLI entry point."""

    def test_success(self, source_dir, tmp_path, capsys):
        output = tmp_path / "out.zip"

        code = main([str(source_dir), str(output), "--level", "6"])

        assert code == 0
        assert "Wrote 2 entries" in capsys.readouterr().out
        assert zipfile.is_zipfile(output)

    def test_missing_source(self, tmp_path, capsys):
        output = tmp_path / "out.zip"

        code = main([str(tmp_path / "missing"), str(output)])

        assert code == 1
        assert "not found" in capsys.readouterr().err
        assert not output.exists()

    def test_rejects_bad_level(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["src", "out.zip", "--level", "12"])

    @pytest.mark.parametrize("chunk_size", ["0", "-4"])
    def test_rejects_non_positive_chunk_size(self, source_dir, tmp_path, chunk_size):
        output = tmp_path / "out.zip"

        with pytest.raises(SystemExit):
            main([str(source_dir), str(output), "--chunk-size", chunk_size])

        assert not output.exists()

    def test_unwritable_output_directory(self, source_dir, tmp_path, capsys):
        output = tmp_path / "missing" / "out.zip"

        code = main([str(source_dir), str(output)])

        assert code == 1
        err = capsys.readouterr().err
        assert err.startswith("Error: Cannot write to")
        assert not output.exists()

    def test_pack_directory_wraps_temp_file_error(self, source_dir, tmp_path):
        output = tmp_path / "missing" / "out.zip"

        with pytest.raises(ArchiveConstructionError) as exc_info:
            pack_directory(source_dir, output)

        assert exc_info.value.path == str(output)
