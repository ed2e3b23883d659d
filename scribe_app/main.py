"""
scribe_app/main.py -- ``questscribe`` command-line entry point.

Inspect and export ``.qsd`` documents without opening the editor.

Usage::

    questscribe entities campaign.qsd
    questscribe state campaign.qsd Hero 120
    questscribe state campaign.qsd 3f2c... 120 --json
    questscribe markers campaign.qsd --entity Hero
    questscribe export campaign.qsd chapter-1.rtf
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from scribe_engine.document_manager import DocumentManager
from scribe_engine.errors import EntityNotFoundError, QuestScribeError

logger = logging.getLogger("scribe_app")


def _setup_logging(verbose: bool = False) -> None:
    """Configure logging for the command-line tool."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _resolve_entity(dm: DocumentManager, ref: str) -> str:
    """Accept an entity id or a (case-insensitive) unique name."""
    entities = dm.list_entities()
    for entity in entities:
        if entity.id == ref:
            return entity.id
    matches = [e for e in entities if e.name.casefold() == ref.casefold()]
    if len(matches) == 1:
        return matches[0].id
    if len(matches) > 1:
        raise QuestScribeError(
            f"More than one character is named '{ref}'. Use its ID instead."
        )
    raise EntityNotFoundError(ref)


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------

def _cmd_entities(dm: DocumentManager, args) -> int:
    dm.load_document(args.document)
    for entity in dm.list_entities():
        print(f"{entity.id}\t{entity.name}\t{entity.color}\t{len(entity.fields)} field(s)")
    return 0


def _cmd_state(dm: DocumentManager, args) -> int:
    dm.load_document(args.document)
    entity_id = _resolve_entity(dm, args.entity)
    if args.json:
        state = dm.get_entity_state(entity_id, args.position)
        print(json.dumps(state, indent=2, ensure_ascii=False))
    else:
        print(dm.render_entity_sheet(entity_id, args.position))
    return 0


def _cmd_markers(dm: DocumentManager, args) -> int:
    dm.load_document(args.document)
    names = {e.id: e.name for e in dm.list_entities()}
    if args.entity:
        markers = dm.markers_for_entity(_resolve_entity(dm, args.entity))
    else:
        markers = dm.list_markers()
    for marker in markers:
        owner = names.get(marker.entity_id, marker.entity_id)
        print(
            f"{marker.position}\t{marker.id}\t{owner}\t"
            f"{len(marker.changes)} change(s)\t{marker.description}"
        )
    return 0


def _cmd_export(dm: DocumentManager, args) -> int:
    document = dm.load_document(args.document)
    dm.export_document(args.output, document.content)
    print(f"Exported {args.document} to {args.output}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="questscribe",
        description="Inspect and export QuestScribe documents.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("entities", help="List the characters in a document.")
    p.add_argument("document")
    p.set_defaults(func=_cmd_entities)

    p = sub.add_parser("state", help="Show a character's state at a position.")
    p.add_argument("document")
    p.add_argument("entity", help="Character ID or name.")
    p.add_argument("position", type=int)
    p.add_argument("--json", action="store_true", help="Print the state as JSON.")
    p.set_defaults(func=_cmd_state)

    p = sub.add_parser("markers", help="List markers in document order.")
    p.add_argument("document")
    p.add_argument("--entity", help="Only markers of this character (ID or name).")
    p.set_defaults(func=_cmd_markers)

    p = sub.add_parser("export", help="Export the document text (.txt, .rtf, .docx).")
    p.add_argument("document")
    p.add_argument("output")
    p.set_defaults(func=_cmd_export)

    return parser


def main(argv=None) -> int:
    """Run the ``questscribe`` command line."""
    args = build_parser().parse_args(argv)
    _setup_logging(args.verbose)
    try:
        return args.func(DocumentManager(), args)
    except QuestScribeError as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
