from __future__ import annotations

import re

from werkzeug.utils import secure_filename

DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[\w-]+=[\w.-]+)*;base64,", re.IGNORECASE)

MAX_FILENAME_LENGTH = 200


def split_data_url(value: str) -> tuple[str | None, str]:
    """Split ``data:<mime>;base64,<payload>`` into (mime, payload).

    Plain base64 input is returned unchanged with no mime type.
    """
    value = value.strip()
    match = DATA_URL_PATTERN.match(value)
    if not match:
        return None, value
    mime = match.group("mime")
    return (mime.lower() if mime else None), value[match.end():]


def normalize_mime_type(mime_type: str | None) -> str | None:
    if not mime_type:
        return None
    normalized = mime_type.split(";", 1)[0].strip().lower()
    if normalized == "image/jpg":
        return "image/jpeg"
    return normalized or None


def sanitize_filename(filename: str | None) -> str | None:
    """Reduce a client supplied filename to a safe basename.

    Returns None when nothing usable is left (empty or dot-only names).
    """
    if not filename:
        return None
    # secure_filename folds directories into the name; keep only the basename
    name = secure_filename(re.split(r"[\\/]", filename)[-1])
    if not name:
        return None
    if len(name) > MAX_FILENAME_LENGTH:
        stem, dot, ext = name.rpartition(".")
        if dot and len(ext) <= 10:
            name = stem[: MAX_FILENAME_LENGTH - len(ext) - 1] + "." + ext
        else:
            name = name[:MAX_FILENAME_LENGTH]
    return name
