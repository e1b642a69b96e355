"""Repository base class for JSON-backed local state."""
import json
import logging
import os
import tempfile
from typing import Any


class BaseRepository:
    """Keeps one JSON document on disk for a repository.

    :meth:`_load` reads the document once at start-up and falls back to the
    given default when the file is missing, unreadable or holds a different
    JSON type.  :meth:`_save` writes a complete snapshot to a temporary file
    in the same directory, flushes it to disk and renames it over the old
    one, so readers of the file only ever see a whole snapshot.
    """

    def __init__(self, file_path: str) -> None:
        self._path = file_path
        self._log = logging.getLogger(f'whattoeat.repository.{type(self).__name__}')

    def _load(self, default: Any) -> Any:
        if not os.path.exists(self._path):
            self._log.debug("No settings file at %s yet", self._path)
            return default
        try:
            with open(self._path, 'r', encoding='utf-8') as fh:
                data = json.load(fh)
        except (json.JSONDecodeError, OSError) as exc:
            self._log.warning("Could not load %s: %s", self._path, exc)
            return default
        if not isinstance(data, type(default)):
            self._log.warning("Ignoring %s: expected a JSON %s", self._path,
                              type(default).__name__)
            return default
        return data

    def _save(self, data: Any) -> None:
        target_dir = os.path.dirname(os.path.abspath(self._path))
        os.makedirs(target_dir, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=target_dir, prefix='.whattoeat-', suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as fh:
                json.dump(data, fh, indent=2, sort_keys=True)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self._path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
