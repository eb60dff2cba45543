"""
Where OrionAI keeps its files.

Everything persistent (``orion.db``, the optional ``.env`` and generated
speech) lives in one data folder:

* ``$ORION_DATA_DIR`` when that variable is set, otherwise
* ``Asset/`` next to ``main.py``, whatever the working directory is.

The variable is read from the real environment only; ``.env`` lives inside
the folder.
"""

import os
from pathlib import Path

#: The directory that contains main.py (one level above this package).
PROJECT_ROOT = Path(__file__).resolve().parent.parent


def data_dir() -> Path:
    """Return the configured data folder (not created)."""
    override = os.environ.get("ORION_DATA_DIR", "").strip()
    if override:
        return Path(override).expanduser()
    return PROJECT_ROOT / "Asset"


#: Absolute path to the data folder.  Created on first import.
ASSET_DIR: Path = data_dir()
ASSET_DIR.mkdir(parents=True, exist_ok=True)


def asset_path(filename: str) -> str:
    """Return the absolute path for *filename* inside the data folder."""
    return str(ASSET_DIR / filename)
