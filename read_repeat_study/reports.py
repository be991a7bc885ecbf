"""Export document reports as CSV or plain text."""

import csv
import os
from datetime import datetime, timedelta

from read_repeat_study.constants import CHARS_PER_PAGE_ESTIMATE, RECENT_IMPORT_DAYS, VERSION
from read_repeat_study.models import Document, Flag

NO_FLAG = "No Flag"
CSV_HEADER = [
    "ID",
    "Document Name",
    "Flag",
    "Imported Date",
    "Last Page Index",
    "Content Length",
    "Reading Progress",
]
RULE = "=" * 51


def reading_progress(document: Document) -> float:
    """Estimated percent read, from the last page and ~2000 chars per page."""
    if not document.last_page_index or document.last_page_index <= 0:
        return 0.0
    estimated_pages = max(1, len(document.content or "") // CHARS_PER_PAGE_ESTIMATE)
    current_page = document.last_page_index + 1
    return min(100.0, current_page * 100.0 / estimated_pages)


def _flag_name(document: Document, flags: dict[int, Flag]) -> str:
    flag = flags.get(document.flag_id) if document.flag_id is not None else None
    return flag.name if flag else NO_FLAG


def _report_path(output_dir: str, ext: str, now: datetime) -> str:
    os.makedirs(output_dir, exist_ok=True)
    return os.path.join(output_dir, f"DocumentReport_{now:%Y%m%d_%H%M%S}.{ext}")


def export_csv(
    documents: list[Document],
    flags: dict[int, Flag],
    output_dir: str,
    now: datetime | None = None,
) -> str:
    """Write one row per document, ordered by name.

    Returns path to the CSV file.
    """
    now = now or datetime.now()
    path = _report_path(output_dir, "csv", now)
    with open(path, "w", newline="", encoding="utf-8") as f:
        f.write(f"# Document Report - Generated on {now:%Y-%m-%d %H:%M:%S}\n\n")
        writer = csv.writer(f, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for doc in sorted(documents, key=lambda d: d.name):
            writer.writerow([
                doc.id,
                doc.name,
                _flag_name(doc, flags),
                f"{doc.imported_date:%Y-%m-%d %H:%M}",
                doc.last_page_index if doc.last_page_index is not None else 0,
                len(doc.content or ""),
                f"{reading_progress(doc):g}%",
            ])
    return path


def render_text_report(
    documents: list[Document],
    flags: dict[int, Flag],
    now: datetime | None = None,
) -> str:
    """Summary, per-document listing and per-flag breakdown."""
    now = now or datetime.now()
    docs = sorted(documents, key=lambda d: d.name)
    flagged = [d for d in docs if d.flag_id is not None and d.flag_id in flags]
    recent_cutoff = now - timedelta(days=RECENT_IMPORT_DAYS)

    lines = [
        RULE,
        "       READ REPEAT STUDY - DOCUMENT REPORT",
        RULE,
        f"Generated on: {now:%Y-%m-%d %H:%M:%S}",
        "",
        "SUMMARY",
        RULE,
        f"Total Documents: {len(docs)}",
        f"Flagged Documents: {len(flagged)}",
        f"Recently Imported ({RECENT_IMPORT_DAYS} days): "
        f"{sum(1 for d in docs if d.imported_date >= recent_cutoff)}",
    ]
    if docs:
        average = sum(reading_progress(d) for d in docs) / len(docs)
        lines.append(f"Average Reading Progress: {average:.1f}%")
    lines += ["", "DOCUMENTS LIST", RULE]

    for doc in docs:
        last_page = (doc.last_page_index or 0) + 1
        lines += [
            f"• {doc.name}",
            f"  Flag: {_flag_name(doc, flags)}",
            f"  Imported: {doc.imported_date:%m/%d/%Y %H:%M}",
            f"  Last Page: {last_page}",
            f"  Content Length: {len(doc.content or ''):,} characters",
            f"  Reading Progress: {reading_progress(doc):.1f}%",
            "",
        ]

    counts: dict[str, int] = {}
    for doc in flagged:
        name = _flag_name(doc, flags)
        counts[name] = counts.get(name, 0) + 1
    if counts:
        lines += ["DOCUMENTS BY FLAG", RULE]
        for name in sorted(counts):
            percentage = counts[name] * 100.0 / len(docs)
            lines.append(f"• {name}: {counts[name]} documents ({percentage:.1f}%)")

    lines += ["", RULE, "         End of Report", f"         read-repeat-study {VERSION}", RULE]
    return "\n".join(lines) + "\n"


def export_text(
    documents: list[Document],
    flags: dict[int, Flag],
    output_dir: str,
    now: datetime | None = None,
) -> str:
    """Write the plain-text report. Returns path to the file."""
    now = now or datetime.now()
    path = _report_path(output_dir, "txt", now)
    with open(path, "w", encoding="utf-8") as f:
        f.write(render_text_report(documents, flags, now=now))
    return path
