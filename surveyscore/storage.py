import logging
import re
from pathlib import Path

from surveyscore.config import settings

logger = logging.getLogger(__name__)

SAFE_NAME = re.compile(r"[A-Za-z0-9._-]+")


def validate_name(name: str) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValueError("Missing or invalid file name")
    if name.startswith("/") or name.startswith("\\") or ".." in name:
        raise ValueError("Invalid file name")
    if not SAFE_NAME.fullmatch(name):
        raise ValueError("File names may only contain letters, digits, dots, dashes and underscores")
    return name


class ReportStorage:
    """Flat object store for generated report files."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def path_for(self, name: str) -> Path:
        return self.root / validate_name(name)

    def save(self, name: str, data: bytes) -> str:
        path = self.path_for(name)
        if path.exists():
            raise FileExistsError(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.info("Stored %s (%d bytes)", name, len(data))
        return name

    def load(self, name: str) -> bytes:
        path = self.path_for(name)
        if not path.is_file():
            raise FileNotFoundError(name)
        return path.read_bytes()


def get_storage() -> ReportStorage:
    return ReportStorage(settings.reports_dir)
