import zipfile
from pathlib import Path

import pytest

from decoflow.domain.errors import InvalidArchiveError
from decoflow.services.archive_service import ArchiveService


def test_pack_and_unpack_tree(tmp_path: Path):
    src = tmp_path / "src"
    (src / "data").mkdir(parents=True)
    (src / "images" / "products").mkdir(parents=True)
    (src / "images" / "empty").mkdir(parents=True)
    (src / "meta.json").write_text("{}", encoding="utf-8")
    (src / "images" / "products" / "a.jpg").write_bytes(b"\x00\x01binary")

    archive = ArchiveService().pack(src, tmp_path / "out" / "b.zip")
    with zipfile.ZipFile(archive) as zf:
        names = set(zf.namelist())
    assert "meta.json" in names
    assert "images/products/a.jpg" in names

    dest = ArchiveService().unpack(archive, tmp_path / "dest")
    assert (dest / "images" / "products" / "a.jpg").read_bytes() == b"\x00\x01binary"
    assert (dest / "images" / "empty").is_dir()


def test_unpack_creates_parents_for_file_only_entries(tmp_path: Path):
    archive = tmp_path / "flat.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("data/sections.json", "[]")
        zf.writestr("images/sections/s.png", b"img")

    dest = ArchiveService().unpack(archive, tmp_path / "dest")
    assert (dest / "data" / "sections.json").read_text() == "[]"
    assert (dest / "images" / "sections" / "s.png").exists()


@pytest.mark.parametrize("name", ["../evil.txt", "/abs/evil.txt", "data/../../evil.txt"])
def test_unpack_rejects_entries_escaping_destination(tmp_path: Path, name: str):
    archive = tmp_path / "evil.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr(name, "x")

    with pytest.raises(InvalidArchiveError):
        ArchiveService().unpack(archive, tmp_path / "dest")
    assert not (tmp_path / "evil.txt").exists()


def test_unpack_rejects_non_zip(tmp_path: Path):
    bogus = tmp_path / "backup.zip"
    bogus.write_text("definitely not a zip", encoding="utf-8")
    with pytest.raises(InvalidArchiveError):
        ArchiveService().unpack(bogus, tmp_path / "dest")
