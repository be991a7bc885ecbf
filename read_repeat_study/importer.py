"""Turn TXT, PDF, DOCX and EPUB files into plain-text documents."""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime

import docx
import ebooklib
from bs4 import BeautifulSoup
from ebooklib import epub
from pypdf import PdfReader

from read_repeat_study.constants import SUPPORTED_EXTENSIONS
from read_repeat_study.models import Document, Flag

logger = logging.getLogger(__name__)

# Blocks that never carry readable body text
_STRIPPED_TAGS = ["script", "style", "nav", "header", "footer", "head"]


class UnsupportedFormatError(ValueError):
    """File extension is not one of SUPPORTED_EXTENSIONS."""


class DocumentImportError(Exception):
    """A supported file could not be read or decoded."""


def is_supported(path: str) -> bool:
    return os.path.splitext(path)[1].lower() in SUPPORTED_EXTENSIONS


def strip_html(html) -> str:
    """Plain text of an HTML/XHTML document, one paragraph per block.

    Drops script/style/nav/header/footer blocks; entities are decoded.
    """
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(_STRIPPED_TAGS):
        tag.decompose()
    lines = [line.strip() for line in soup.get_text("\n").splitlines()]
    return "\n\n".join(line for line in lines if line)


def read_txt(path: str) -> str:
    with open(path, encoding="utf-8-sig", errors="replace") as f:
        return f.read()


def read_pdf(path: str) -> str:
    reader = PdfReader(path)
    pages = [(page.extract_text() or "").strip() for page in reader.pages]
    return "\n\n".join(p for p in pages if p)


def read_docx(path: str) -> str:
    paragraphs = [p.text.strip() for p in docx.Document(path).paragraphs]
    return "\n\n".join(p for p in paragraphs if p)


def read_epub(path: str) -> str:
    """Chapters in spine order, HTML stripped."""
    book = epub.read_epub(path)
    chapters = []
    for item_id, _linear in book.spine:
        item = book.get_item_with_id(item_id)
        if item is None or item.get_type() != ebooklib.ITEM_DOCUMENT:
            continue
        text = strip_html(item.get_content())
        if text:
            chapters.append(text)
    return "\n\n".join(chapters)


EXTRACTORS = {
    ".txt": read_txt,
    ".pdf": read_pdf,
    ".docx": read_docx,
    ".epub": read_epub,
}


def extract_text(path: str) -> str:
    """Plain text of a supported file.

    Raises UnsupportedFormatError for other extensions and
    DocumentImportError when the file cannot be read.
    """
    ext = os.path.splitext(path)[1].lower()
    extractor = EXTRACTORS.get(ext)
    if extractor is None:
        raise UnsupportedFormatError(f"Unsupported file type: {os.path.basename(path)}")
    try:
        return extractor(path)
    except Exception as e:
        raise DocumentImportError(f"Failed to import {os.path.basename(path)}: {e}") from e


def document_from_file(path: str, flag: Flag | None = None) -> Document:
    return Document(
        name=os.path.splitext(os.path.basename(path))[0],
        file_path=os.path.abspath(path),
        content=extract_text(path),
        imported_date=datetime.now(),
        flag_id=flag.id if flag else None,
    )


@dataclass
class ImportResult:
    imported: list[Document] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)   # (path, reason)
    skipped: list[str] = field(default_factory=list)               # unsupported extension

    @property
    def attempted(self) -> int:
        return len(self.imported) + len(self.failed)


def import_files(paths: list[str], storage, flag: Flag | None = None) -> ImportResult:
    """Import every supported file, saving each as a new document.

    One failing file is reported in the result and does not stop the batch.
    """
    result = ImportResult()
    for path in paths:
        if not is_supported(path):
            result.skipped.append(path)
            continue
        try:
            document = document_from_file(path, flag=flag)
            storage.save_document(document)
        except (DocumentImportError, OSError) as e:
            logger.warning("Import failed for %s: %s", path, e)
            result.failed.append((path, str(e)))
            continue
        result.imported.append(document)
    return result
