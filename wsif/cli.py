"""
WSIF CLI - Command-line interface for WSIF wiki archives.

Commands:
  wsif inspect  - Show archive headers and the page listing
  wsif extract  - Unpack every page of an archive into a directory
  wsif pack     - Build an archive from a directory (inverse of extract)
  wsif validate - Parse an archive and report broken records
  wsif convert  - Convert to/from JSON
  wsif identify - Quick check if a file is WSIF
  wsif view     - Browse an archive in the terminal (TUI)
"""

from __future__ import annotations

import argparse
import json
import logging
import mimetypes
import os
import re
import sys
from datetime import datetime, timezone
from pathlib import Path

MANIFEST = "pages.json"

_UNSAFE_FILENAME_RE = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


def _configure_logging(verbose: bool) -> None:
    level = "DEBUG" if verbose else os.environ.get("WSIF_LOG_LEVEL", "WARNING").upper()
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr)


def _reject_traversal(output: str) -> None:
    if ".." in Path(output).parts:
        print("Error: Output path must not contain '..' (path traversal)", file=sys.stderr)
        sys.exit(1)


def _manifest_file(src: Path, name: str) -> Path:
    """Resolve a manifest entry inside src, refusing names that leave it."""
    rel = Path(name)
    if rel.is_absolute() or ".." in rel.parts:
        print(f"Error: Manifest entry {name!r} points outside {src} (path traversal)", file=sys.stderr)
        sys.exit(1)
    return src / rel


def _load(path: str):
    """Load an archive or exit with the structural error."""
    from wsif.document import WSIFDocument
    from wsif.errors import StructuralError
    from wsif.reader import WSIFReader

    doc = WSIFDocument()
    try:
        result = WSIFReader.load(path, doc.create_page, log=lambda msg: None)
    except StructuralError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    result.apply_to(doc)
    return doc, result


def _describe(attributes: int) -> str:
    from wsif.spec import PageAttributes

    flags = PageAttributes(attributes)
    names = [f.name.lower() for f in (
        PageAttributes.ENCRYPTED, PageAttributes.EMBEDDED_FILE, PageAttributes.EMBEDDED_IMAGE,
    ) if flags & f]
    return ",".join(names) or "text"


def cmd_inspect(args: argparse.Namespace) -> None:
    """Inspect a .wsif archive - show headers and page listing."""
    doc, result = _load(args.path)

    print(f"WSIF v{result.version}")
    print()
    print("HEADERS:")
    print(f"  generator: {result.generator or '(none)'} {result.generator_version}")
    print(f"  author:    {result.author or '(none)'}")
    declared = "(none)" if result.expected_pages is None else str(result.expected_pages)
    print(f"  pages:     {declared} declared, {len(doc)} imported")
    print()

    print("PAGES:")
    for page in doc.pages:
        if page.last_modified:
            mtime = datetime.fromtimestamp(page.last_modified, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        else:
            mtime = "-"
        title = page.title if len(page.title) <= 40 else page.title[:37] + "..."
        print(f"  {title:40s}  {_describe(page.attributes):28s}  {len(page.content):>8d}  {mtime}")

    if result.errors:
        print()
        print("ERRORS:")
        for message in result.errors:
            print(f"  {message}")


def _safe_filename(title: str) -> str:
    name = _UNSAFE_FILENAME_RE.sub("_", title).strip(" .")
    return name or "page"


def cmd_extract(args: argparse.Namespace) -> None:
    """Unpack every page into a directory, with a pages.json manifest."""
    output = args.output or Path(args.path).stem
    _reject_traversal(output)
    doc, result = _load(args.path)

    out_dir = Path(output)
    out_dir.mkdir(parents=True, exist_ok=True)
    used: set[str] = set()
    manifest = []
    for page in doc.pages:
        base = _safe_filename(page.title)
        if page.is_encrypted:
            base += ".enc"
        elif page.is_text:
            base += ".txt"
        elif page.is_image and not Path(base).suffix:
            base += mimetypes.guess_extension(page.mime) or ""
        name = base
        n = 1
        while name.lower() in used:
            stem, ext = os.path.splitext(base)
            name = f"{stem}_{n}{ext}"
            n += 1
        used.add(name.lower())

        (out_dir / name).write_bytes(page.get_data())
        entry = {
            "title": page.title,
            "file": name,
            "attributes": int(page.attributes),
            "last_modified": page.last_modified,
        }
        if page.is_image:
            entry["mime"] = page.mime
        manifest.append(entry)

    (out_dir / MANIFEST).write_text(json.dumps(manifest, indent=2, ensure_ascii=False), encoding="utf-8")
    print(f"Extracted {len(manifest)} pages from {args.path} -> {out_dir}")
    if result.errors:
        print(f"  {len(result.errors)} errors (run 'wsif validate' for details)", file=sys.stderr)


def _pages_from_directory(src: Path):
    """Yield pages for a directory, using its manifest when there is one."""
    from wsif.document import WSIFPage
    from wsif.spec import PageAttributes

    manifest_path = src / MANIFEST
    if manifest_path.is_file():
        entries = json.loads(manifest_path.read_text(encoding="utf-8"))
        for entry in entries:
            data = _manifest_file(src, entry["file"]).read_bytes()
            attributes = PageAttributes(entry.get("attributes", 0))
            mtime = entry.get("last_modified", 0)
            title = entry["title"]
            if attributes & PageAttributes.ENCRYPTED:
                yield WSIFPage(title, data, attributes, mtime)
            elif attributes & PageAttributes.EMBEDDED_IMAGE:
                page = WSIFPage.image(title, entry.get("mime", "application/octet-stream"), data, mtime)
                page.attributes = attributes
                yield page
            elif attributes & PageAttributes.EMBEDDED_FILE:
                yield WSIFPage.file(title, data, mtime)
            else:
                yield WSIFPage(title, data, attributes, mtime)
        return

    for path in sorted(p for p in src.iterdir() if p.is_file()):
        mtime = int(path.stat().st_mtime)
        data = path.read_bytes()
        if path.suffix == ".txt":
            yield WSIFPage(path.stem, data, PageAttributes.NONE, mtime)
            continue
        mime, _ = mimetypes.guess_type(path.name)
        if mime and mime.startswith("image/"):
            yield WSIFPage.image(path.name, mime, data, mtime)
        else:
            yield WSIFPage.file(path.name, data, mtime)


def cmd_pack(args: argparse.Namespace) -> None:
    """Build an archive from a directory."""
    from wsif.writer import WSIFWriter

    src = Path(args.path)
    if not src.is_dir():
        print(f"Error: Not a directory: {args.path}", file=sys.stderr)
        sys.exit(1)
    output = args.output or "."
    _reject_traversal(output)
    Path(output).mkdir(parents=True, exist_ok=True)

    author = args.author if args.author is not None else os.environ.get("WSIF_AUTHOR", "")
    written = WSIFWriter.save(
        _pages_from_directory(src),
        output,
        single_file=not args.multi,
        inline_blobs=not args.external_blobs,
        author=author,
        relaxed=args.relaxed,
    )
    print(f"Packed {written} pages -> {Path(output) / 'index.wsif'}")


def cmd_validate(args: argparse.Namespace) -> None:
    """Validate a .wsif archive."""
    from wsif.reader import WSIFReader

    path = args.path
    if not Path(path).is_file():
        print(f"FAIL: {path} not found")
        sys.exit(1)
    if not WSIFReader.is_wsif(path):
        print(f"FAIL: {path} is not a WSIF file (no wsif.version header)")
        sys.exit(1)

    doc, result = _load(path)
    if result.errors:
        print(f"FAIL: {path} has {len(result.errors)} errors")
        for message in result.errors:
            print(f"  {message}")
        sys.exit(1)
    print(f"OK: {path} is valid WSIF v{result.version}")
    print(f"    Pages: {len(doc)}")
    for message in result.warnings:
        print(f"    warning: {message}")


def cmd_convert(args: argparse.Namespace) -> None:
    """Convert to/from JSON."""
    from wsif.converters import from_json, to_json

    if args.direction == "to":
        doc, _ = _load(args.input)
        text = to_json(doc)
        if args.output:
            _reject_traversal(args.output)
            Path(args.output).write_text(text, encoding="utf-8")
            print(f"Converted {args.input} -> {args.output}")
        else:
            print(text)
        return

    input_path = Path(args.input)
    if not input_path.is_file():
        print(f"Error: File not found: {args.input}", file=sys.stderr)
        sys.exit(1)
    try:
        doc = from_json(input_path.read_text(encoding="utf-8"))
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    output = args.output or input_path.stem
    _reject_traversal(output)
    Path(output).mkdir(parents=True, exist_ok=True)
    written = doc.write(output)
    print(f"Converted {args.input} -> {Path(output) / 'index.wsif'} ({written} pages)")


def cmd_identify(args: argparse.Namespace) -> None:
    """Quick check if a file is WSIF."""
    from wsif.reader import WSIFReader

    is_wsif = Path(args.path).is_file() and WSIFReader.is_wsif(args.path)
    print(f"{args.path}: {'WSIF file' if is_wsif else 'not WSIF'}")
    sys.exit(0 if is_wsif else 1)


def cmd_view(args: argparse.Namespace) -> None:
    """Browse a .wsif archive in the terminal."""
    try:
        from wsif.tui.viewer import run_viewer
    except ImportError:
        print(
            "TUI viewer requires the 'textual' package.\n"
            "Install it with: pip install \"wsif[tui]\"",
            file=sys.stderr,
        )
        sys.exit(1)
    run_viewer(args.path)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="wsif",
        description="WSIF - Wiki on a Stick page archive codec.",
    )
    from wsif import __version__
    parser.add_argument("--version", action="version", version=f"wsif {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    p_inspect = sub.add_parser("inspect", help="Inspect a .wsif archive")
    p_inspect.add_argument("path", help="Path to .wsif file")

    p_extract = sub.add_parser("extract", help="Unpack pages into a directory")
    p_extract.add_argument("path", help="Path to .wsif file")
    p_extract.add_argument("-o", "--output", help="Output directory (default: archive name)")

    p_pack = sub.add_parser("pack", help="Build an archive from a directory")
    p_pack.add_argument("path", help="Directory with pages (and optional pages.json)")
    p_pack.add_argument("-o", "--output", help="Output directory (default: current directory)")
    p_pack.add_argument("--multi", action="store_true", help="One .wsif file per page plus an index")
    p_pack.add_argument("--external-blobs", action="store_true", help="Write embedded files/images as blob files")
    p_pack.add_argument("--relaxed", action="store_true", help="Omit length, last_modified and woas.pages")
    p_pack.add_argument("-a", "--author", help="Author (or set WSIF_AUTHOR env var)")

    p_validate = sub.add_parser("validate", help="Validate a .wsif archive")
    p_validate.add_argument("path", help="Path to .wsif file")

    p_convert = sub.add_parser("convert", help="Convert to/from JSON")
    p_convert.add_argument("direction", choices=["to", "from"], help="Conversion direction")
    p_convert.add_argument("format", choices=["json"], help="Other format")
    p_convert.add_argument("input", help="Input file path")
    p_convert.add_argument("-o", "--output", help="Output file (to) or directory (from)")

    p_identify = sub.add_parser("identify", help="Quick check if a file is WSIF")
    p_identify.add_argument("path", help="Path to file")

    p_view = sub.add_parser("view", help="Browse an archive in the terminal")
    p_view.add_argument("path", help="Path to .wsif file")

    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    if not args.command:
        parser.print_help()
        sys.exit(0)

    commands = {
        "inspect": cmd_inspect,
        "extract": cmd_extract,
        "pack": cmd_pack,
        "validate": cmd_validate,
        "convert": cmd_convert,
        "identify": cmd_identify,
        "view": cmd_view,
    }

    commands[args.command](args)


if __name__ == "__main__":
    main()
