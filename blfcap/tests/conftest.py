# Ensure the repository root is importable even if pytest is invoked from a subfolder.
# This keeps `from blfcap.core...` imports stable across shells/CI.
from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[2]
p = str(REPO_ROOT)
if p not in sys.path:
    sys.path.insert(0, p)


@pytest.fixture(autouse=True)
def _reset_blfcap_logger():
    # setup_logger() binds handlers to whatever sys.stderr is at call time
    yield
    logger = logging.getLogger("blfcap")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
