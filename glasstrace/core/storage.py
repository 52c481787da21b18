"""
Persisted client-side state of a terminal.

Mirrors what a browser keeps for the auth subsystem, on disk:

    <root>/local_storage.json   key/value storage (the persisted session lives here)
    <root>/databases/<name>/    structured caches, one directory per database
    <root>/cookies.json         cookie jar

Files are written with 0600 permissions.  `clear_all` is the
emergency-reset path and is wholesale, not selective.
"""

import json
import logging
import shutil
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class ClientStorage:
    def __init__(self, root: Path, namespace: str = "glasstrace"):
        self.root = Path(root)
        self.namespace = namespace
        self._local_file = self.root / "local_storage.json"
        self._cookie_file = self.root / "cookies.json"
        self._db_dir = self.root / "databases"

    @property
    def session_key(self) -> str:
        return f"{self.namespace}-auth-token"

    # ── Key/value storage ────────────────────────────────────────────

    def get_item(self, key: str) -> Any | None:
        return self._read(self._local_file).get(key)

    def set_item(self, key: str, value: Any) -> None:
        data = self._read(self._local_file)
        data[key] = value
        self._write(self._local_file, data)

    def remove_item(self, key: str) -> None:
        data = self._read(self._local_file)
        if data.pop(key, None) is not None:
            self._write(self._local_file, data)

    def keys(self) -> list[str]:
        return list(self._read(self._local_file))

    # ── Structured caches ────────────────────────────────────────────

    def open_database(self, name: str) -> Path:
        path = self._db_dir / name
        path.mkdir(parents=True, exist_ok=True)
        return path

    def databases(self) -> list[str]:
        if not self._db_dir.exists():
            return []
        return sorted(p.name for p in self._db_dir.iterdir() if p.is_dir())

    def delete_database(self, name: str) -> None:
        shutil.rmtree(self._db_dir / name, ignore_errors=True)

    # ── Cookies ──────────────────────────────────────────────────────

    def set_cookie(self, name: str, value: str) -> None:
        jar = self._read(self._cookie_file)
        jar[name] = value
        self._write(self._cookie_file, jar)

    def cookies(self) -> dict[str, str]:
        return self._read(self._cookie_file)

    # ── Reset ────────────────────────────────────────────────────────

    def clear_all(self) -> None:
        """Drop all key/value storage, every namespaced cache and all cookies."""
        self._local_file.unlink(missing_ok=True)
        for name in self.databases():
            if self.namespace in name:
                logger.info("Clearing cached database %s", name)
                self.delete_database(name)
        self._cookie_file.unlink(missing_ok=True)

    # ── Internals ────────────────────────────────────────────────────

    def _read(self, path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        try:
            with open(path, "r") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Failed to read %s: %s", path.name, e)
            return {}

    def _write(self, path: Path, data: dict[str, Any]) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(data, f, indent=2)
        path.chmod(0o600)  # rw-------
