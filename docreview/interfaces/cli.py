from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import Optional, Sequence

from ..config import Settings, get_settings
from ..logging import configure_logging
from ..review import ReviewDocument, ReviewManager, RunResult
from ..services import InMemoryReviewStore
from ..utils import UnsupportedDocumentError, file_id_for, read_document_content


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Extract review checklists from documents and grade documents against them."
    )
    parser.add_argument(
        "--store",
        help="Path of the JSON review store (default: <files_root>/review_store.json).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Print debug logs to the console.",
    )

    subparsers = parser.add_subparsers(dest="command")
    subparsers.required = True

    extract = subparsers.add_parser("extract", help="Extract checklist items from source documents")
    extract.add_argument("session_id", help="Review session identifier")
    extract.add_argument("files", nargs="+", help="Source documents (text or image files)")
    extract.add_argument(
        "--document-type",
        choices=["checklist", "general"],
        default="checklist",
        help="checklist: copy items from a checklist document; general: author items from an ordinary document.",
    )
    extract.add_argument(
        "--requirements",
        help="Extra requirements for checklists authored from general documents.",
    )

    review = subparsers.add_parser("review", help="Grade target documents against the session checklist")
    review.add_argument("session_id", help="Review session identifier")
    review.add_argument("files", nargs="+", help="Target documents (text or image files)")
    review.add_argument("--instructions", help="Additional instructions for the reviewer model.")
    review.add_argument("--comment-format", help="Template the reviewer should follow for comments.")
    review.add_argument(
        "--document-mode",
        choices=["small", "large"],
        default="small",
        help="small: grade from the full text; large: grade from topic summaries and answered questions.",
    )

    add_item = subparsers.add_parser("add-item", help="Add a user-authored checklist item")
    add_item.add_argument("session_id", help="Review session identifier")
    add_item.add_argument("content", help="Checklist item text")

    results = subparsers.add_parser("results", help="Show checklist items and graded results")
    results.add_argument("session_id", help="Review session identifier")

    return parser.parse_args(args=argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    try:
        settings = get_settings()
    except ValueError as exc:
        print(exc)
        return 1

    logger = configure_logging(settings.log_dir, verbose=args.verbose)
    logger.info("Starting docreview CLI process")

    store_path = Path(args.store).expanduser() if args.store else settings.store_path
    store = InMemoryReviewStore.load(store_path)

    try:
        if args.command == "results":
            return asyncio.run(_show_results(store, args.session_id))

        if args.command == "add-item":
            return asyncio.run(_add_item(store, args.session_id, args.content))

        try:
            documents = load_documents(args.files)
        except (FileNotFoundError, UnsupportedDocumentError) as exc:
            logger.error("Cannot read input documents: %s", exc)
            print(exc)
            return 1
        result = asyncio.run(_run_pipeline(args, settings, store, documents))
    finally:
        store.save(store_path)

    if result.ok:
        print(f"{args.command}: success")
        logger.info("docreview CLI process finished")
        return 0
    print(f"{args.command}: {result.status}")
    if result.error:
        print(result.error)
    return 1


def load_documents(paths: Sequence[str]) -> list[ReviewDocument]:
    documents: list[ReviewDocument] = []
    for raw_path in paths:
        path = Path(raw_path).expanduser()
        if not path.exists():
            raise FileNotFoundError(f"Document not found: {path}")
        payload = read_document_content(path)
        documents.append(
            ReviewDocument(
                id=file_id_for(path),
                name=path.name,
                text=payload["content"],
                images=(payload["image"],) if payload["image"] else (),
                mime_type=payload["mime_type"] or "text/plain",
            )
        )
    return documents


async def _run_pipeline(
    args: argparse.Namespace,
    settings: Settings,
    store: InMemoryReviewStore,
    documents: Sequence[ReviewDocument],
) -> RunResult:
    manager = ReviewManager.from_settings(settings, store)
    if args.command == "extract":
        return await manager.start_extraction(
            args.session_id,
            documents,
            args.document_type,
            checklist_requirements=args.requirements,
        )
    if args.command == "review":
        return await manager.start_evaluation(
            args.session_id,
            documents,
            args.instructions,
            comment_format=args.comment_format,
            document_mode=args.document_mode,
        )
    raise ValueError(f"Unknown command: {args.command}")


async def _add_item(store: InMemoryReviewStore, session_id: str, content: str) -> int:
    if await store.get_session(session_id) is None:
        print(f"Unknown review session: {session_id}")
        return 1
    item = await store.create_item(session_id, content, "user")
    print(f"Added checklist item {item.id}")
    return 0


async def _show_results(store: InMemoryReviewStore, session_id: str) -> int:
    session = await store.get_session(session_id)
    if session is None:
        print(f"Unknown review session: {session_id}")
        return 1

    print(f"# {session.title}")
    items = await store.list_items(session_id)
    results = await store.list_results(session_id)
    for item in items:
        print(f"\n[{item.id}] ({item.provenance}) {item.content}")
        for result in results:
            if result.checklist_id != item.id:
                continue
            comment = " ".join(result.comment.split())
            if len(comment) > 160:
                comment = comment[:157] + "..."
            print(f"  - {result.file_name or result.file_id}: {result.grade} {comment}")
    return 0


__all__ = ["load_documents", "main", "parse_args"]
