"""Map recording references onto paths in the PBX recording tree.

Recordings are referenced either by absolute path, by a path under the
base directory, or by a bare file name such as
``out-1001-2002-20240131-154500-1706715900.12.wav``. Bare names carrying
a ``-YYYYMMDD-HHMMSS-`` stamp live in the dated ``YYYY/MM/DD`` folders.
"""

import re
import secrets
from posixpath import basename, dirname, join, splitext

from callredact.config import DEFAULT_REMOTE_BASE_PATH

_DATE_STAMP = re.compile(r"-(\d{8})-\d{6}-")
DEFAULT_EXTENSION = ".wav"
TEMP_PREFIX = ".tmp-redacted-"


def build_target_path(recording_path: str, base_path: str = DEFAULT_REMOTE_BASE_PATH) -> str:
    """Path of a relative recording reference under ``base_path``."""
    if not recording_path:
        raise ValueError("Recording path is required")

    base = base_path.rstrip("/") or "/"
    clean = recording_path.lstrip("/")
    if clean.startswith("monitor/"):
        clean = clean[len("monitor/") :]

    stem, ext = splitext(clean)
    match = _DATE_STAMP.search(stem)
    if match:
        stamp = match.group(1)
        name = basename(stem) + (ext or DEFAULT_EXTENSION)
        return join(base, stamp[:4], stamp[4:6], stamp[6:8], name)

    return join(base, clean)


def resolve_remote_path(recording_path: str, base_path: str = DEFAULT_REMOTE_BASE_PATH) -> str:
    """Absolute remote path for any supported recording reference."""
    if not recording_path:
        raise ValueError("Recording path is required")

    if recording_path.startswith("/"):
        return recording_path

    trimmed_base = base_path.strip("/")
    if trimmed_base and recording_path.startswith(trimmed_base + "/"):
        return "/" + recording_path

    return build_target_path(recording_path, base_path)


def temp_path_for(target_path: str, recording_id: str) -> str:
    """Hidden sibling of ``target_path`` unique to this replacement attempt.

    The random component keeps concurrent or retried attempts from ever
    sharing a temp file.
    """
    safe_id = re.sub(r"[^A-Za-z0-9_.-]", "_", recording_id)
    name = f"{TEMP_PREFIX}{safe_id}-{secrets.token_hex(4)}-{basename(target_path)}"
    return join(dirname(target_path), name)
