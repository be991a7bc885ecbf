"""CLI interface: library management, voices, reports and read-aloud playback."""

import argparse
import asyncio
import logging
import sys

from read_repeat_study.config import DEFAULTS, load_settings, save_settings, set_setting
from read_repeat_study.constants import DATA_DIR, DEFAULT_FLAG_COLOR, SUPPORTED_EXTENSIONS, VERSION
from read_repeat_study.importer import import_files
from read_repeat_study.models import Flag, HighlightPhase, PlaybackState
from read_repeat_study.playback import PageOutOfRangeError, VoiceNotSelectedError
from read_repeat_study.reports import export_csv, export_text
from read_repeat_study.session import ReaderSession
from read_repeat_study.speech import EdgeSpeechService, SpeechError
from read_repeat_study.storage import FlagValidationError, Storage
from read_repeat_study.voices import display_name, filter_locales, resolve_locale


def _storage() -> Storage:
    return Storage(DATA_DIR)


def _get_document(storage: Storage, document_id: int):
    """Load a document by id, exiting if it does not exist."""
    document = storage.get_document(document_id)
    if document is None:
        print(f"Error: Document {document_id} not found.", file=sys.stderr)
        print("Run 'readrepeat list' to see document ids.", file=sys.stderr)
        raise SystemExit(1)
    return document


def _get_flag(storage: Storage, name: str) -> Flag:
    flag = storage.find_flag(name)
    if flag is None:
        print(f"Error: Flag '{name}' not found.", file=sys.stderr)
        print("Create it with 'readrepeat flags add <name>'.", file=sys.stderr)
        raise SystemExit(1)
    return flag


def cmd_import(args):
    """Import one or more files as new documents."""
    storage = _storage()
    flag = _get_flag(storage, args.flag) if args.flag else None

    result = import_files(args.files, storage, flag=flag)
    for path in result.skipped:
        print(f"  [skip] {path}: not one of {', '.join(SUPPORTED_EXTENSIONS)}")
    for path, reason in result.failed:
        print(f"  [fail] {reason}", file=sys.stderr)
    for document in result.imported:
        print(f"  [{document.id}] {document.name}")

    if not result.attempted:
        print("Error: No supported files in selection.", file=sys.stderr)
        raise SystemExit(1)
    print(f"Imported {len(result.imported)} of {result.attempted} files.")


def cmd_list(args):
    """List documents, newest first."""
    storage = _storage()
    flags = {f.id: f for f in storage.get_all_flags()}
    documents = storage.get_all_documents()
    if args.flag:
        flag = _get_flag(storage, args.flag)
        documents = [d for d in documents if d.flag_id == flag.id]
    if not documents:
        print("No documents found.")
        return

    print("Documents:")
    for doc in sorted(documents, key=lambda d: d.imported_date, reverse=True):
        flag = flags.get(doc.flag_id)
        flag_label = f"  [{flag.name}]" if flag else ""
        page = (doc.last_page_index or 0) + 1
        print(f"  {doc.id:>4}  {doc.name:<30} page {page}{flag_label}")


def cmd_show(args):
    """Print a document's pages and phrases."""
    storage = _storage()
    document = _get_document(storage, args.id)
    session = ReaderSession(storage, None, document)
    pages = session.pages

    if args.page is not None:
        if not 1 <= args.page <= len(pages):
            print(f"Error: Page {args.page} is out of range (1-{len(pages)}).", file=sys.stderr)
            raise SystemExit(1)
        selected = [pages[args.page - 1]]
    else:
        selected = pages

    print(f"{document.name} ({len(pages)} pages)")
    for page in selected:
        print(f"\n--- Page {page.index + 1}/{len(pages)} ---")
        for i, phrase in enumerate(page.phrases):
            print(f"  {i + 1:>3}. {phrase}")


def _make_printer(session: ReaderSession):
    """on_change listener that prints each phrase as it starts."""
    def on_change(snapshot):
        if snapshot.state is PlaybackState.PLAYING and snapshot.phase is HighlightPhase.ACTIVE:
            position = snapshot.position
            phrase = session.pages[position.page].phrases[position.phrase]
            print(f"[{position.page + 1}/{len(session.pages)}] {phrase}", flush=True)
        elif snapshot.state is PlaybackState.COMPLETED:
            print("-- end of document --", flush=True)
    return on_change


async def _read(session: ReaderSession, page: int | None, phrase: int | None) -> None:
    controller = session.controller
    if page is not None:
        controller.jump_to_page(page)
    if phrase is not None:
        controller.select_phrase(controller.position.page, phrase - 1)
    try:
        await controller.play()
    except asyncio.CancelledError:
        controller.pause()
        raise
    finally:
        await session.bridge.flush()


def cmd_read(args):
    """Read a document aloud from its saved page."""
    storage = _storage()
    document = _get_document(storage, args.id)
    settings = load_settings(DATA_DIR)

    session = ReaderSession(
        storage,
        EdgeSpeechService(rate=settings["rate"]),
        document,
        settings=settings,
    )
    session.controller.on_change = _make_printer(session)
    if args.voice:
        session.set_voice(args.voice)
    if args.repeat:
        session.controller.toggle_repeat()

    try:
        asyncio.run(_read(session, args.page, args.phrase))
    except VoiceNotSelectedError:
        print("Error: No voice selected for this document.", file=sys.stderr)
        print(f"Run 'readrepeat voices' and then 'readrepeat voice {args.id} <voice>'.", file=sys.stderr)
        raise SystemExit(1)
    except PageOutOfRangeError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(1)
    except SpeechError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(1)
    except KeyboardInterrupt:
        position = session.controller.position
        print(f"\nPaused at page {position.page + 1}, phrase {position.phrase + 1}.")


def cmd_voice(args):
    """Choose the voice a document is read with."""
    storage = _storage()
    document = _get_document(storage, args.id)

    try:
        locales = asyncio.run(EdgeSpeechService().list_voices())
    except Exception as e:
        print(f"Warning: Could not verify voice ({e}). Saving anyway.", file=sys.stderr)
    else:
        if resolve_locale(locales, args.locale) is None:
            print(f"Error: Unknown voice: {args.locale}", file=sys.stderr)
            print("Run 'readrepeat voices' to see available voices.", file=sys.stderr)
            raise SystemExit(1)

    document.voice_locale = args.locale
    storage.save_document(document)
    print(f"Updated: {document.name} → {args.locale}")


def cmd_voices(args):
    """List available voices."""
    try:
        locales = asyncio.run(EdgeSpeechService().list_voices())
    except Exception as e:
        print(f"Error: Could not list voices: {e}", file=sys.stderr)
        raise SystemExit(1)
    locales = filter_locales(locales, args.filter or "")
    if not locales:
        print("No matching voices found.")
        return
    print("Available voices:")
    for loc in locales:
        print(f"  {loc.id:<36} {display_name(loc)}")


def cmd_delete(args):
    storage = _storage()
    document = _get_document(storage, args.id)
    storage.delete_document(document)
    print(f"Deleted: {document.name}")


def cmd_tag(args):
    """Add or change a document's flag."""
    storage = _storage()
    document = _get_document(storage, args.id)
    flag = _get_flag(storage, args.flag)
    document.flag_id = flag.id
    storage.save_document(document)
    print(f"Updated: {document.name} → {flag.name}")


def cmd_untag(args):
    storage = _storage()
    document = _get_document(storage, args.id)
    document.flag_id = None
    storage.save_document(document)
    print(f"Updated: {document.name} → no flag")


def cmd_flags(args):
    """List, add or delete flags."""
    storage = _storage()
    action = args.action

    if action == "list":
        flags = storage.get_all_flags()
        if not flags:
            print("No flags found.")
            return
        print("Flags:")
        for flag in flags:
            print(f"  {flag.name:<20} {flag.color}")

    elif action == "add":
        if not args.name:
            print("Error: 'flags add' requires <name>", file=sys.stderr)
            raise SystemExit(1)
        if storage.find_flag(args.name):
            print(f"Error: Flag '{args.name}' already exists.", file=sys.stderr)
            raise SystemExit(1)
        try:
            flag = storage.save_flag(Flag(name=args.name, color=args.color or DEFAULT_FLAG_COLOR))
        except FlagValidationError as e:
            print(f"Error: {e}", file=sys.stderr)
            raise SystemExit(1)
        print(f"Created flag: {flag.name} ({flag.color})")

    elif action == "delete":
        if not args.name:
            print("Error: 'flags delete' requires <name>", file=sys.stderr)
            raise SystemExit(1)
        flag = _get_flag(storage, args.name)
        storage.delete_flag(flag)
        print(f"Deleted flag: {flag.name}")


def cmd_report(args):
    """Export a CSV or text report of all documents."""
    storage = _storage()
    documents = storage.get_all_documents()
    flags = {f.id: f for f in storage.get_all_flags()}
    exporter = export_csv if args.format == "csv" else export_text
    try:
        path = exporter(documents, flags, args.out)
    except OSError as e:
        print(f"Error: Failed to export report: {e}", file=sys.stderr)
        raise SystemExit(1)
    print(f"Report written to {path}")


def cmd_config(args):
    """Show settings, or update one."""
    settings = load_settings(DATA_DIR)
    if args.key is None:
        for key in DEFAULTS:
            print(f"  {key:<16} {settings[key]}")
        return
    if args.value is None:
        print(f"Error: 'config {args.key}' requires a value", file=sys.stderr)
        raise SystemExit(1)
    try:
        set_setting(settings, args.key, args.value)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(1)
    save_settings(DATA_DIR, settings)
    print(f"Updated: {args.key} → {settings[args.key]}")


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="readrepeat",
        description="Read Repeat Study — import documents and read them aloud phrase by phrase",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # import
    import_parser = subparsers.add_parser("import", help="Import TXT/PDF/DOCX/EPUB files")
    import_parser.add_argument("files", nargs="+", help="Files to import")
    import_parser.add_argument("--flag", help="Flag every imported document")
    import_parser.set_defaults(func=cmd_import)

    # list
    list_parser = subparsers.add_parser("list", help="List documents")
    list_parser.add_argument("--flag", help="Only documents with this flag")
    list_parser.set_defaults(func=cmd_list)

    # show
    show_parser = subparsers.add_parser("show", help="Show a document's pages and phrases")
    show_parser.add_argument("id", type=int, help="Document id")
    show_parser.add_argument("--page", type=int, help="Only this page (1-based)")
    show_parser.set_defaults(func=cmd_show)

    # read
    read_parser = subparsers.add_parser("read", help="Read a document aloud")
    read_parser.add_argument("id", type=int, help="Document id")
    read_parser.add_argument("--page", type=int, help="Start at this page (1-based)")
    read_parser.add_argument("--phrase", type=int, help="Start at this phrase of the page (1-based)")
    read_parser.add_argument("--repeat", action="store_true", help="Start over at the end of the document")
    read_parser.add_argument("--voice", help="Voice to use (saved on the document)")
    read_parser.set_defaults(func=cmd_read)

    # voice
    voice_parser = subparsers.add_parser("voice", help="Set the voice of a document")
    voice_parser.add_argument("id", type=int, help="Document id")
    voice_parser.add_argument("locale", help="Voice id, see 'readrepeat voices'")
    voice_parser.set_defaults(func=cmd_voice)

    # voices
    voices_parser = subparsers.add_parser("voices", help="List available voices")
    voices_parser.add_argument("--filter", help="Filter by language, name or country")
    voices_parser.set_defaults(func=cmd_voices)

    # delete
    delete_parser = subparsers.add_parser("delete", help="Delete a document")
    delete_parser.add_argument("id", type=int, help="Document id")
    delete_parser.set_defaults(func=cmd_delete)

    # tag / untag
    tag_parser = subparsers.add_parser("tag", help="Add or change a document's flag")
    tag_parser.add_argument("id", type=int, help="Document id")
    tag_parser.add_argument("flag", help="Flag name")
    tag_parser.set_defaults(func=cmd_tag)

    untag_parser = subparsers.add_parser("untag", help="Remove a document's flag")
    untag_parser.add_argument("id", type=int, help="Document id")
    untag_parser.set_defaults(func=cmd_untag)

    # flags
    flags_parser = subparsers.add_parser("flags", help="Manage flags")
    flags_parser.add_argument("action", choices=["list", "add", "delete"], help="Flag action")
    flags_parser.add_argument("name", nargs="?", help="Flag name")
    flags_parser.add_argument("--color", help="Hex color or swatch (Red, Green, Blue, Yellow, AppBlue)")
    flags_parser.set_defaults(func=cmd_flags)

    # report
    report_parser = subparsers.add_parser("report", help="Export a document report")
    report_parser.add_argument("format", choices=["csv", "txt"], help="Report format")
    report_parser.add_argument("--out", default=".", help="Output directory")
    report_parser.set_defaults(func=cmd_report)

    # config
    config_parser = subparsers.add_parser("config", help="Show or change settings")
    config_parser.add_argument("key", nargs="?", help="Setting key")
    config_parser.add_argument("value", nargs="?", help="New value")
    config_parser.set_defaults(func=cmd_config)

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return

    args.func(args)
