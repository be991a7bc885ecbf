"""JSON-file storage for documents and flags."""

import json
import logging
import os
import re
import threading
from datetime import datetime

from read_repeat_study.constants import (
    DATA_DIR,
    DOCUMENTS_DIR,
    FLAGS_FILE,
    FLAG_SWATCHES,
)
from read_repeat_study.models import Document, Flag

logger = logging.getLogger(__name__)

_HEX_COLOR_RE = re.compile(r"^#(?:[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")


class FlagValidationError(ValueError):
    """Flag name missing or color not a hex value."""


def write_artifact(directory: str, filename: str, data: dict) -> str:
    """Write JSON artifact to directory/filename.

    Returns path to the written file.
    """
    path = os.path.join(directory, filename)
    tmp_path = path + ".tmp"
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
    os.replace(tmp_path, path)
    return path


def load_artifact(directory: str, filename: str) -> dict | None:
    """Read JSON artifact. Returns None if file doesn't exist."""
    path = os.path.join(directory, filename)
    if not os.path.exists(path):
        return None
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def normalize_color(color: str) -> str:
    """Swatch name or hex string → upper-case "#RRGGBB"/"#AARRGGBB"."""
    value = (color or "").strip()
    for name, hex_value in FLAG_SWATCHES.items():
        if value.lower() == name.lower():
            return hex_value
    if not _HEX_COLOR_RE.match(value):
        raise FlagValidationError(f"Invalid flag color: {color!r}")
    return value.upper()


def validate_flag(flag: Flag) -> Flag:
    """Trim the name and normalize the color in place."""
    name = (flag.name or "").strip()
    if not name:
        raise FlagValidationError("Flag name is required")
    flag.name = name
    flag.color = normalize_color(flag.color)
    return flag


def document_to_dict(document: Document) -> dict:
    return {
        "id": document.id,
        "name": document.name,
        "file_path": document.file_path,
        "content": document.content,
        "imported_date": document.imported_date.isoformat(),
        "flag_id": document.flag_id,
        "voice_locale": document.voice_locale,
        "last_page_index": document.last_page_index,
    }


def document_from_dict(data: dict) -> Document:
    return Document(
        id=data["id"],
        name=data.get("name", ""),
        file_path=data.get("file_path", ""),
        content=data.get("content", ""),
        imported_date=datetime.fromisoformat(data["imported_date"]),
        flag_id=data.get("flag_id"),
        voice_locale=data.get("voice_locale", ""),
        last_page_index=data.get("last_page_index"),
    )


class Storage:
    """Documents live in documents/<id>.json, flags in flags.json."""

    def __init__(self, data_dir: str = DATA_DIR):
        self.data_dir = data_dir
        self.documents_dir = os.path.join(data_dir, DOCUMENTS_DIR)
        os.makedirs(self.documents_dir, exist_ok=True)
        # Guards read-modify-write of document files against worker threads
        self._document_lock = threading.Lock()

    # --- documents ---

    def _document_ids(self) -> list[int]:
        ids = []
        for filename in os.listdir(self.documents_dir):
            stem, ext = os.path.splitext(filename)
            if ext == ".json" and stem.isdigit():
                ids.append(int(stem))
        return sorted(ids)

    def get_all_documents(self) -> list[Document]:
        documents = []
        for document_id in self._document_ids():
            document = self.get_document(document_id)
            if document is not None:
                documents.append(document)
        return documents

    def get_document(self, document_id: int) -> Document | None:
        try:
            data = load_artifact(self.documents_dir, f"{document_id}.json")
        except json.JSONDecodeError:
            logger.warning("Malformed document file: %s.json, skipping", document_id)
            return None
        return document_from_dict(data) if data else None

    def save_document(self, document: Document) -> Document:
        """Insert (assigning an id) if new, update otherwise."""
        with self._document_lock:
            if document.id is None:
                document.id = max(self._document_ids(), default=0) + 1
            write_artifact(self.documents_dir, f"{document.id}.json", document_to_dict(document))
        return document

    def delete_document(self, document: Document) -> None:
        if document.id is None:
            return
        path = os.path.join(self.documents_dir, f"{document.id}.json")
        if os.path.exists(path):
            os.remove(path)

    def set_last_page_index(self, document_id: int, page_index: int) -> None:
        """Update only the stored reading position of a document."""
        with self._document_lock:
            data = load_artifact(self.documents_dir, f"{document_id}.json")
            if data is None:
                raise KeyError(f"Document {document_id} not found")
            data["last_page_index"] = page_index
            write_artifact(self.documents_dir, f"{document_id}.json", data)

    # --- flags ---

    def _load_flags(self) -> list[Flag]:
        data = load_artifact(self.data_dir, FLAGS_FILE) or {"flags": []}
        return [Flag(id=f["id"], name=f["name"], color=f["color"]) for f in data["flags"]]

    def _write_flags(self, flags: list[Flag]) -> None:
        data = {"flags": [{"id": f.id, "name": f.name, "color": f.color} for f in flags]}
        write_artifact(self.data_dir, FLAGS_FILE, data)

    def get_all_flags(self) -> list[Flag]:
        return self._load_flags()

    def get_flag(self, flag_id: int) -> Flag | None:
        for flag in self._load_flags():
            if flag.id == flag_id:
                return flag
        return None

    def find_flag(self, name: str) -> Flag | None:
        """Case-insensitive lookup by name."""
        for flag in self._load_flags():
            if flag.name.lower() == name.strip().lower():
                return flag
        return None

    def save_flag(self, flag: Flag) -> Flag:
        validate_flag(flag)
        flags = self._load_flags()
        if flag.id is None:
            flag.id = max((f.id for f in flags), default=0) + 1
            flags.append(flag)
        else:
            flags = [flag if f.id == flag.id else f for f in flags]
            if all(f is not flag for f in flags):
                flags.append(flag)
        self._write_flags(flags)
        return flag

    def delete_flag(self, flag: Flag) -> None:
        """Remove a flag and clear it from every document that carried it."""
        flags = [f for f in self._load_flags() if f.id != flag.id]
        self._write_flags(flags)
        for document in self.get_all_documents():
            if document.flag_id == flag.id:
                document.flag_id = None
                self.save_document(document)
