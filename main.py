"""
OrionAI Desktop — entry point.

Run with:
    python main.py

The console log defaults to DEBUG (storage, dispatch and API traces); set
``ORION_LOG_LEVEL=WARNING`` to quieten it.
"""

import logging
import os
import sys

if sys.version_info < (3, 10):
    sys.exit(
        "OrionAI needs Python 3.10 or later "
        f"(found {sys.version_info.major}.{sys.version_info.minor})."
    )

logging.basicConfig(
    level=getattr(logging, os.environ.get("ORION_LOG_LEVEL", "DEBUG").upper(),
                  logging.DEBUG),
    format="%(asctime)s  %(message)s",
    datefmt="%H:%M:%S",
)

from orion_ai.app import OrionApp  # noqa: E402
from orion_ai.errors import StorageUnavailable  # noqa: E402


def main() -> None:
    try:
        app = OrionApp()
    except StorageUnavailable as exc:
        sys.exit(f"OrionAI cannot open its data folder: {exc}")
    app.run()


if __name__ == "__main__":
    main()
