"""Small filesystem and path helpers shared across modules."""

import json
import os
import posixpath
import tempfile


def atomic_write_text(path: str, text: str, encoding: str = "utf-8"):
    """Write *text* to *path* via a temp file in the same folder + rename.

    A crash mid-write leaves the previous file intact instead of a
    truncated one.
    """
    folder = os.path.dirname(path) or "."
    os.makedirs(folder, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix=".tmp_", dir=folder)
    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="") as f:
            f.write(text)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


def atomic_write_json(path: str, data):
    atomic_write_text(path, json.dumps(data, ensure_ascii=False, indent=2))


def normalize_asset_path(path: str) -> str:
    """Normalize a project-relative path to the ``Assets/...`` form.

    Backslashes become slashes, leading slashes are dropped and the
    ``Assets/`` prefix is added when missing.
    """
    path = (path or "").replace("\\", "/").lstrip("/")
    if path != "Assets" and not path.startswith("Assets/"):
        path = "Assets/" + path if path else "Assets"
    return posixpath.normpath(path)


def to_asset_path(project_dir: str, abs_path: str) -> str:
    """Convert an absolute file path inside *project_dir* to ``Assets/...``."""
    rel = os.path.relpath(abs_path, project_dir)
    return rel.replace(os.sep, "/")


def sanitize_file_name(name: str) -> str:
    """Turn a language name into a safe file-name fragment.

    Spaces become underscores; path-invalid characters and parentheses
    are removed ("Portuguese (Brazil)" -> "Portuguese_Brazil").
    """
    name = name.replace(" ", "_")
    for ch in '<>:"/\\|?*()':
        name = name.replace(ch, "")
    return "".join(ch for ch in name if ord(ch) >= 32)
