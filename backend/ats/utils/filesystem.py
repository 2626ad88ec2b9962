from pathlib import Path

from ats.config import settings


def ensure_blob_dirs(blob_dir: Path | None = None) -> Path:
    path = blob_dir or settings.blob_dir
    path.mkdir(parents=True, exist_ok=True)
    return path


def ensure_bucket_dir(bucket: str, blob_dir: Path | None = None) -> Path:
    path = ensure_blob_dirs(blob_dir) / bucket
    path.mkdir(exist_ok=True)
    return path


def sanitize_filename(name: str) -> str:
    keep = set("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789._-")
    cleaned = "".join(c if c in keep else "_" for c in Path(name).name)
    return cleaned or "upload"
