from pathlib import Path
from registrar.config import settings


def ensure_data_dirs(data_path: Path | None = None) -> Path:
    path = data_path or settings.data_path
    path.mkdir(parents=True, exist_ok=True)
    (path / "uploads").mkdir(exist_ok=True)
    return path


def ensure_upload_dirs(kind: str, data_path: Path | None = None) -> Path:
    uploads = data_path / "uploads" if data_path else settings.uploads_dir
    upload_dir = uploads / kind
    upload_dir.mkdir(parents=True, exist_ok=True)
    return upload_dir


def file_extension(name: str | None) -> str:
    if not name or "." not in name:
        return ""
    return name.rsplit(".", 1)[1].lower()
