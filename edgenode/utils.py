"""Shared utility functions for the edgenode modules."""

import json
import os
import shutil
import time
from typing import Any


def now_ms() -> int:
    """Return the current Unix time in whole milliseconds."""
    return int(time.time() * 1000)


def write_json_atomic(filepath: str, data: Any) -> None:
    """Replace *filepath* with *data* as indented JSON.

    The previous file, if any, is copied to ``<filepath>.bak`` first.  The
    document is serialised before anything touches the disk and written
    through a sibling ``.tmp`` file, so a failed write leaves the old file
    in place.

    Raises:
        OSError: The file or its backup could not be written.
        TypeError: *data* is not JSON-serialisable.
    """
    payload = json.dumps(data, indent=2)

    dirpath = os.path.dirname(filepath)
    if dirpath:
        os.makedirs(dirpath, exist_ok=True)
    if os.path.exists(filepath):
        shutil.copy2(filepath, filepath + ".bak")

    temp_file = filepath + ".tmp"
    try:
        with open(temp_file, "w", encoding="utf-8") as fh:
            fh.write(payload)
        os.replace(temp_file, filepath)
    except OSError:
        if os.path.exists(temp_file):
            os.remove(temp_file)
        raise
