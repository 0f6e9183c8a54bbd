import os
import re
from importlib import metadata
from pathlib import Path

root_dir = Path(__file__).resolve().parents[3]

data_dir_path = Path(os.getenv("KEEPWATCHING_DATA_DIR", root_dir / "data"))
data_dir_path.mkdir(parents=True, exist_ok=True)

alembic_dir = root_dir / "src" / "alembic"


def get_version() -> str:
    pyproject = root_dir / "pyproject.toml"

    if pyproject.exists():
        match = re.search(r'version = "(.+)"', pyproject.read_text())
        if match:
            return match.group(1)

    try:
        return metadata.version("keepwatching-status")
    except metadata.PackageNotFoundError:
        raise ValueError("Could not find version in pyproject.toml")
