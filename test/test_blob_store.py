from pathlib import Path

import pytest
from conftest import make_image

from decoflow.domain.errors import NotFoundError
from decoflow.repositories.blob_store import FileBlobStore, reference_key


def test_copy_to_internal_is_idempotent_for_internal_paths(tmp_path: Path):
    blobs = FileBlobStore(tmp_path / "images")
    external = make_image(tmp_path / "camera" / "IMG_0001.JPG")

    internal = blobs.copy_to_internal(str(external))
    assert Path(internal).parent == tmp_path / "images"
    assert Path(internal).suffix == ".jpg"

    assert blobs.copy_to_internal(internal) == internal
    assert len(blobs.list_files()) == 1


def test_copy_to_internal_missing_source_raises(tmp_path: Path):
    blobs = FileBlobStore(tmp_path / "images")
    with pytest.raises(NotFoundError):
        blobs.copy_to_internal(str(tmp_path / "nope.jpg"))


def test_remote_references_pass_through(tmp_path: Path):
    blobs = FileBlobStore(tmp_path / "images")
    url = "https://example.com/a.png"
    assert blobs.copy_to_internal(url) == url
    assert blobs.prepare_for_export(url, tmp_path / "scratch", "products") == url
    assert reference_key(url) is None


def test_reference_key_uses_file_name_only():
    assert reference_key("/data/old-install/images/abc.jpg") == "abc.jpg"
    assert reference_key("file:///var/mobile/images/abc.jpg") == "abc.jpg"
    assert reference_key("C:\\Users\\me\\images\\abc.jpg") == "abc.jpg"
    assert reference_key(None) is None
    assert reference_key("") is None


def test_delete_image_counts_outcomes(tmp_path: Path):
    blobs = FileBlobStore(tmp_path / "images")
    inside = blobs.copy_to_internal(str(make_image(tmp_path / "a.png")))
    outside = make_image(tmp_path / "outside.png")

    assert blobs.delete_image(inside) is True
    assert blobs.delete_image(inside) is False
    assert blobs.delete_image(str(outside)) is False
    assert blobs.delete_image(None) is False

    assert outside.exists()
    assert blobs.stats.snapshot() == {"attempted": 4, "deleted": 1, "missing": 1, "failed": 0, "skipped": 2}


def test_clean_orphaned_matches_by_file_name(tmp_path: Path):
    blobs = FileBlobStore(tmp_path / "images")
    kept = blobs.copy_to_internal(str(make_image(tmp_path / "kept.png")))
    orphan = blobs.copy_to_internal(str(make_image(tmp_path / "orphan.png")))

    # same file name under a different root still protects the file
    stale_root_ref = "/old/root/images/" + Path(kept).name
    assert blobs.clean_orphaned([stale_root_ref, None]) == 1

    assert Path(kept).exists()
    assert not Path(orphan).exists()
    assert blobs.clean_orphaned([kept]) == 0


def test_adopt_duplicates_files_owned_by_another_record(tmp_path: Path):
    blobs = FileBlobStore(tmp_path / "images")
    original = blobs.copy_to_internal(str(make_image(tmp_path / "a.png")))

    assert blobs.adopt(original, owned=[original]) == original

    copy = blobs.adopt(original, owned=[])
    assert copy != original
    assert Path(copy).read_bytes() == Path(original).read_bytes()


def test_prepare_for_export_missing_file_returns_none(tmp_path: Path):
    blobs = FileBlobStore(tmp_path / "images")
    assert blobs.prepare_for_export(str(tmp_path / "images" / "gone.jpg"), tmp_path / "scratch", "sections") is None


def test_export_and_restore_keep_file_name(tmp_path: Path):
    blobs = FileBlobStore(tmp_path / "images")
    ref = blobs.copy_to_internal(str(make_image(tmp_path / "a.png", b"abc")))
    scratch = tmp_path / "scratch"

    rel = blobs.prepare_for_export(ref, scratch, "products")
    assert rel == f"images/products/{Path(ref).name}"

    restore_to = FileBlobStore(tmp_path / "restored")
    restored = restore_to.restore_from_import(rel, scratch)
    assert Path(restored).name == Path(ref).name
    assert Path(restored).read_bytes() == b"abc"
    assert restore_to.restore_from_import("images/products/missing.png", scratch) is None
    assert restore_to.restore_from_import("../../etc/passwd", scratch) is None
