"""
Local forms service - metadata and definitions from JSON files.

Layout:
    data/forms/
        tax-form.json
        feedback.json

Each file:
    {
        "metadata": {
            "id": "6613ef8d...",
            "slug": "tax-form",
            "notificationEmail": "forms@example.gov",
            "live": {"updated_at": "2026-01-01T10:00:00+00:00"},
            "draft": {"updated_at": "2026-02-01T10:00:00+00:00"}
        },
        "definitions": {"live": {...}, "draft": {...}}
    }

A status block without updated_at takes the file's modification time, so
editing a file invalidates the cached model on the next request.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from form_engine.contracts import FormMetadata
from form_engine.errors import NotFoundError

logger = logging.getLogger(__name__)


class LocalFormsService:
    """Serves form metadata/definitions from a directory of JSON files."""

    def __init__(self, forms_dir: str = "data/forms"):
        self.forms_dir = Path(forms_dir)
        if not self.forms_dir.exists():
            logger.warning(f"Forms directory not found: {self.forms_dir}")
        logger.info(f"LocalFormsService initialized: {self.forms_dir}")

    def _load(self, path: Path) -> dict:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        mtime = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc).isoformat()
        metadata = data.setdefault("metadata", {})
        for status in ("draft", "live"):
            block = metadata.get(status)
            if isinstance(block, dict) and "updated_at" not in block:
                block["updated_at"] = mtime

        return data

    def get_form_metadata(self, slug: str) -> FormMetadata:
        """
        Raises:
            NotFoundError: If there is no file for the slug
        """
        path = self.forms_dir / f"{slug}.json"

        if not slug or not path.is_file():
            raise NotFoundError(f"Form '{slug}' not found")

        metadata = self._load(path)["metadata"]
        metadata.setdefault("slug", slug)
        return FormMetadata.from_json(metadata)

    def get_form_definition(self, form_id: str, status: str) -> Optional[dict]:
        """Return the definition for a form id and status, None if absent."""
        for path in sorted(self.forms_dir.glob("*.json")):
            data = self._load(path)
            if data["metadata"].get("id") == form_id:
                return data.get("definitions", {}).get(status)

        logger.warning(f"No form file with id {form_id}")
        return None
