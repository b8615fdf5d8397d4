import logging
import sys
from pathlib import Path

import pytest


# Project packages live at the repository root; make them importable however pytest is invoked.
ROOT = Path(__file__).resolve().parents[1]
ROOT_STR = str(ROOT)
if ROOT_STR not in sys.path:
    sys.path.insert(0, ROOT_STR)


@pytest.fixture(autouse=True)
def _drop_file_log_handlers():
    root = logging.getLogger("")
    before = list(root.handlers)
    yield
    for handler in list(root.handlers):
        if handler not in before and isinstance(handler, logging.FileHandler):
            root.removeHandler(handler)
            handler.close()
