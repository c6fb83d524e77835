import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


def make_image(path: Path, payload: bytes = b"\x89PNG\r\n\x1a\nfake-image") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(payload)
    return path


def build_app(tmp_path: Path, name: str = "home", share_dir: Path | None = None):
    from decoflow.application.container import build_container
    from decoflow.config import get_app_paths
    from decoflow.services.collaborators import DirectoryShareTarget

    paths = get_app_paths(base_dir=tmp_path / name)
    share = DirectoryShareTarget(share_dir) if share_dir is not None else None
    return build_container(paths, share=share)


def normalized_records(app) -> dict:
    """Every record as a manifest dict, with image references reduced to file names."""
    from decoflow.domain.images import rewrite_record_images
    from decoflow.domain.manifest import to_manifest

    out = {}
    for kind, records in app.exporter.load_records().items():
        out[kind] = [
            to_manifest(rewrite_record_images(r, lambda ref, _sub: Path(ref).name))
            for r in records
        ]
    return out
