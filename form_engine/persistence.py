"""
Save-and-resume persistence.

File-backed implementation of the session strategy hooks, so a user can
leave a form and come back after the cache TTL has expired.

Layout:
    outputs/saved_sessions/
        SESSION-<key>.json

Design:
- One file per saved form instance, overwritten on each save
- Keyed by the same derived key as the cache, so a resumed session
  finds exactly the form/status it left
- Hooks never raise on a missing file (hydrate returns None, purge no-ops)
"""

import hashlib
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from form_engine.config import SessionStrategy
from form_engine.contracts import FormRequest
from form_engine.core.session_keys import derive_key

logger = logging.getLogger(__name__)


class FileSessionPersistence:
    """Persists form state to JSON files for save and resume."""

    def __init__(self, base_dir: str = "outputs/saved_sessions"):
        """
        Initialize persistence layer.

        Args:
            base_dir: Directory saved sessions are written to
        """
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"FileSessionPersistence initialized: {self.base_dir}")

    def _path(self, request: FormRequest) -> Path:
        # Keys contain ':' and user-controlled slugs, so hash them for the filename
        key_id = derive_key(request).id
        digest = hashlib.sha256(key_id.encode('utf-8')).hexdigest()[:32]
        return self.base_dir / f"SESSION-{digest}.json"

    def persist(self, state: Dict[str, Any], request: FormRequest) -> str:
        """
        Save state for later resumption.

        Returns:
            str: Absolute path to saved file
        """
        filepath = self._path(request)

        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(state, f, indent=2, ensure_ascii=False)

        logger.info(f"Saved session state: {filepath.name}")
        return str(filepath.absolute())

    def hydrate(self, request: FormRequest) -> Optional[Dict[str, Any]]:
        """
        Load saved state.

        Returns:
            dict if a saved session exists, None otherwise
        """
        filepath = self._path(request)

        if not filepath.exists():
            return None

        with open(filepath, 'r', encoding='utf-8') as f:
            state = json.load(f)

        logger.info(f"Loaded saved session state: {filepath.name}")
        return state

    def purge(self, request: FormRequest) -> None:
        """Delete saved state once the form instance is finished."""
        filepath = self._path(request)

        if filepath.exists():
            filepath.unlink()
            logger.info(f"Purged saved session state: {filepath.name}")

    def exists(self, request: FormRequest) -> bool:
        return self._path(request).exists()

    def as_strategy(self) -> SessionStrategy:
        """Bundle the hooks into a SessionStrategy."""
        return SessionStrategy(
            session_hydrator=self.hydrate,
            session_persister=self.persist,
            session_purger=self.purge
        )
