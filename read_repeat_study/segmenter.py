"""Split document text into pages and pages into spoken phrases."""

import re

from read_repeat_study.models import Page

# Blank line (optionally holding whitespace) between two blocks
_PAGE_BREAK_RE = re.compile(r"\n\s*\n")

# Sentence/clause end followed by whitespace, or a run of newlines.
# Lookbehind keeps the punctuation attached to the phrase it closes.
# "Mr. Smith" and "3. 5" split here too; that is accepted behaviour.
_PHRASE_BREAK_RE = re.compile(r"(?<=[.!?:;])\s+|[\r\n]+")


def paginate(text: str) -> list[str]:
    """Split text on blank lines into trimmed, non-empty page blocks.

    Always returns at least one page: empty or whitespace-only text
    yields a single empty page.
    """
    blocks = [block.strip() for block in _PAGE_BREAK_RE.split(text or "")]
    pages = [block for block in blocks if block]
    return pages if pages else [""]


def segment_into_phrases(page_text: str) -> list[str]:
    """Split one page into sentence/clause-level phrases.

    A page with no boundaries becomes one phrase equal to the trimmed page.
    """
    text = (page_text or "").strip()
    phrases = [span.strip() for span in _PHRASE_BREAK_RE.split(text)]
    phrases = [p for p in phrases if p]
    return phrases if phrases else [text]


def build_pages(text: str) -> list[Page]:
    """Paginate text and segment every page. Pure: same text, same pages."""
    return [
        Page(index=i, text=page_text, phrases=segment_into_phrases(page_text))
        for i, page_text in enumerate(paginate(text))
    ]
