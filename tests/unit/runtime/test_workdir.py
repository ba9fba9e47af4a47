import gzip

import pytest

from biopsy.runtime.workdir import create_workdir, retain_files, scoped_workdir


def test_scoped_workdir_is_removed_on_exit():
    with scoped_workdir() as workdir:
        (workdir / "file.txt").write_text("data")
        assert workdir.is_dir()
    assert not workdir.exists()


def test_scoped_workdir_is_removed_when_body_raises(tmp_path):
    with pytest.raises(RuntimeError):
        with scoped_workdir(tmp_path) as workdir:
            (workdir / "file.txt").write_text("data")
            raise RuntimeError("boom")
    assert not workdir.exists()
    assert workdir.parent == tmp_path


def test_scoped_workdir_without_cleanup(tmp_path):
    with scoped_workdir(tmp_path, cleanup=False) as workdir:
        pass
    assert workdir.is_dir()


def test_create_workdir_is_unique(tmp_path):
    first = create_workdir(tmp_path / "nested")
    second = create_workdir(tmp_path / "nested")

    assert first != second
    assert first.is_dir() and second.is_dir()


def test_retain_files_moves_only_named_files(tmp_path):
    workdir = create_workdir(tmp_path)
    (workdir / "keep.txt").write_text("keep")
    (workdir / "drop.txt").write_text("drop")
    destination = tmp_path / "kept"

    kept = retain_files(workdir, {"keep.txt", "absent.txt"}, destination)

    assert kept == [destination / "keep.txt"]
    assert (destination / "keep.txt").read_text() == "keep"
    assert not (workdir / "keep.txt").exists()
    assert (workdir / "drop.txt").exists()


def test_retain_files_compresses(tmp_path):
    workdir = create_workdir(tmp_path)
    (workdir / "keep.txt").write_text("keep")

    kept = retain_files(workdir, ["keep.txt"], tmp_path / "kept", compress=True)

    assert kept == [tmp_path / "kept" / "keep.txt.gz"]
    with gzip.open(kept[0], "rt") as fh:
        assert fh.read() == "keep"


def test_retain_nothing(tmp_path):
    assert retain_files(tmp_path, [], tmp_path / "kept") == []
    assert not (tmp_path / "kept").exists()
