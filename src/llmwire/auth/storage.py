"""
At-rest storage of the Codex OAuth credential.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from ..core import CredentialStorageError, get_logger
from ..models import StoredCodexAuth

AUTH_FILE_NAME = "codex_oauth.json"


class CredentialStore:
    """Reads and writes ``<home>/auth/codex_oauth.json``."""

    def __init__(self, auth_dir: Path):
        self.auth_dir = Path(auth_dir)
        self.path = self.auth_dir / AUTH_FILE_NAME
        self.logger = get_logger(__name__)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Optional[StoredCodexAuth]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return StoredCodexAuth.model_validate(data)
        except (OSError, ValueError, ValidationError) as e:
            raise CredentialStorageError(f"Failed to read {self.path}: {e}") from e

    def save(self, auth: StoredCodexAuth) -> None:
        """Write the record as pretty JSON, readable by the owner only."""
        try:
            self.auth_dir.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(auth.model_dump(mode="json"), f, indent=2)
            if os.name == "posix":
                self.path.chmod(0o600)
        except OSError as e:
            raise CredentialStorageError(f"Failed to write {self.path}: {e}") from e

        self.logger.debug("Codex credential saved", path=str(self.path), source=auth.source)

    def delete(self) -> bool:
        """Remove the record; returns whether a file was removed."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise CredentialStorageError(f"Failed to remove {self.path}: {e}") from e
        return True
