"""Import journal entries from local text, markdown and JSON exports."""

from __future__ import annotations

import json
import logging
import re
import uuid
from pathlib import Path
from typing import Iterable, List, Optional

from .schemas import JournalEntry, normalize_date

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".txt", ".md", ".json"}
ENTRY_NAMESPACE = uuid.UUID("6f1c1f52-4d1e-4a57-9a0b-6a4e1d2c9b31")


def _normalize_text(text: str) -> str:
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def _parse_optional_date(value: object) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    try:
        return normalize_date(value)  # type: ignore[arg-type]
    except (ValueError, OverflowError):
        return None


def _date_from_filename(path: Path) -> Optional[str]:
    match = re.search(r"(\d{4}[-_]\d{2}[-_]\d{2})", path.name)
    if not match:
        return None
    return _parse_optional_date(match.group(1).replace("_", "-"))


def stable_entry_id(source: str) -> str:
    return str(uuid.uuid5(ENTRY_NAMESPACE, source))


class EntryImporter:
    """Loads local files into ``JournalEntry`` records. Nothing is persisted here."""

    def import_paths(self, inputs: Iterable[str]) -> List[JournalEntry]:
        entries: List[JournalEntry] = []
        for raw in inputs:
            path = Path(raw)
            if path.is_dir():
                for child in sorted(path.rglob("*")):
                    if child.is_file() and child.suffix.lower() in SUPPORTED_EXTENSIONS:
                        entries.extend(self._load_file(child))
            elif path.is_file():
                entries.extend(self._load_file(path))
            else:
                logger.warning("Skipping missing import path %s", path)
        return entries

    def _load_file(self, path: Path) -> List[JournalEntry]:
        suffix = path.suffix.lower()
        if suffix in {".txt", ".md"}:
            entry = self._load_plaintext(path)
            return [entry] if entry is not None else []
        if suffix == ".json":
            return self._load_json(path)
        return []

    def _load_plaintext(self, path: Path) -> Optional[JournalEntry]:
        date = _date_from_filename(path)
        content = _normalize_text(path.read_text(encoding="utf-8", errors="ignore"))
        if date is None or not content:
            logger.info("Skipping %s: no date in filename or empty content", path)
            return None
        return JournalEntry(id=stable_entry_id(str(path)), date=date, content=content)

    def _load_json(self, path: Path) -> List[JournalEntry]:
        raw = path.read_text(encoding="utf-8", errors="ignore")
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Skipping %s: not valid JSON", path)
            return []

        if isinstance(data, dict):
            data = data.get("entries", [])
        if not isinstance(data, list):
            return []

        entries: List[JournalEntry] = []
        for idx, item in enumerate(data):
            if not isinstance(item, dict):
                continue
            date = _parse_optional_date(item.get("date"))
            content = _normalize_text(str(item.get("content") or ""))
            if date is None or not content:
                continue
            entry_id = str(item.get("id") or stable_entry_id(f"{path}#{idx}"))
            entries.append(JournalEntry(id=entry_id, date=date, content=content))

        skipped = len(data) - len(entries)
        if skipped:
            logger.info("Skipped %d unusable items in %s", skipped, path)
        return entries
