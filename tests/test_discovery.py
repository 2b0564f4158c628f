"""Tests for image and directory discovery."""

import pytest

from image_from_image.discovery import build_pairs, build_units, find_image_files, find_subdirectories, is_supported_image
from image_from_image.exceptions import DiscoveryError


@pytest.fixture
def image_dir(tmp_path):
    for name in ("b.PNG", "a.jpg", "c.webp", "d.tiff", "notes.txt", "e.gif"):
        (tmp_path / name).write_bytes(b"")
    nested = tmp_path / "nested"
    nested.mkdir()
    (nested / "f.jpeg").write_bytes(b"")
    return tmp_path


@pytest.mark.parametrize(
    "name, expected",
    [("x.jpg", True), ("x.JPEG", True), ("x.tif", True), ("x.webp", True), ("x.gif", False), ("x", False)],
)
def test_is_supported_image(tmp_path, name, expected):
    assert is_supported_image(tmp_path / name) is expected


def test_find_images_sorted(image_dir):
    names = [p.name for p in find_image_files(image_dir)]
    assert names == ["a.jpg", "b.PNG", "c.webp", "d.tiff"]


def test_find_images_recursive(image_dir):
    names = [p.name for p in find_image_files(image_dir, recurse=True)]
    assert "f.jpeg" in names
    assert len(names) == 5


def test_single_file_input(image_dir):
    assert find_image_files(image_dir / "a.jpg") == [(image_dir / "a.jpg").resolve()]
    assert find_image_files(image_dir / "notes.txt") == []


def test_missing_input(tmp_path):
    with pytest.raises(DiscoveryError):
        find_image_files(tmp_path / "missing")


def test_paths_are_absolute(image_dir, monkeypatch):
    monkeypatch.chdir(image_dir)
    assert all(p.is_absolute() for p in find_image_files("."))


def test_find_subdirectories_sorted(tmp_path):
    for name in ("zeta", "alpha", "mid"):
        (tmp_path / name).mkdir()
    (tmp_path / "file.txt").write_text("")

    assert [p.name for p in find_subdirectories(tmp_path)] == ["alpha", "mid", "zeta"]


def test_find_subdirectories_missing(tmp_path):
    with pytest.raises(DiscoveryError, match="not found"):
        find_subdirectories(tmp_path / "missing")


def test_build_units_numbers_from_one(image_dir):
    units = build_units(find_image_files(image_dir))
    assert [u.index for u in units] == [1, 2, 3, 4]
    assert units[0].name == "a.jpg"
    assert units[0].file_id == str(image_dir.resolve() / "a.jpg")


def test_build_pairs_drops_surplus(tmp_path):
    inputs = [tmp_path / "in1", tmp_path / "in2", tmp_path / "in3"]
    profiles = [tmp_path / "p1", tmp_path / "p2"]

    pairs = build_pairs(inputs, profiles)

    assert [(p.input_dir.name, p.profile_dir.name) for p in pairs] == [("in1", "p1"), ("in2", "p2")]
    assert pairs[0].label == "in1<->p1"


def test_build_pairs_more_profiles(tmp_path):
    pairs = build_pairs([tmp_path / "in1"], [tmp_path / "p1", tmp_path / "p2"])
    assert len(pairs) == 1
