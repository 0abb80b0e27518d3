"""Atomic JSON document files.

A write goes to a temp file in the target directory, is fsynced, then
renamed over the target, so readers see either the old or the new
document and never a partial one.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from folio.exceptions import PersistenceError


def read_json(path: Path) -> Any | None:
    """Return the parsed document, or None when the file is missing or empty.

    Raises:
        PersistenceError: the file exists but cannot be read or parsed.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as e:
        raise PersistenceError(f"cannot read {path}: {e}") from e

    if not text.strip():
        return None
    try:
        return json.loads(text)
    except ValueError as e:
        raise PersistenceError(f"corrupt JSON document {path}: {e}") from e


def write_json_atomic(path: Path, data: Any) -> None:
    """Replace ``path`` with ``data`` serialized as JSON, all or nothing."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
        )
    except OSError as e:
        raise PersistenceError(f"cannot write {path}: {e}") from e

    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except (OSError, TypeError, ValueError) as e:
        tmp_path.unlink(missing_ok=True)
        raise PersistenceError(f"cannot write {path}: {e}") from e
