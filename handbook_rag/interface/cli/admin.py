"""Passage store administration: create the collection, load a JSONL export, count.

Examples:
    handbook-admin init
    handbook-admin load var/passages.jsonl
    handbook-admin count
"""

import argparse
import asyncio
import logging

from handbook_rag.config.composition import build_passage_store
from handbook_rag.config.logging import configure_logging
from handbook_rag.config.settings import AppSettings
from handbook_rag.domain.errors import DomainError
from handbook_rag.infrastructure.vectorstore.memory_passage_store import load_jsonl
from handbook_rag.infrastructure.vectorstore.qdrant_passage_store import QdrantPassageStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="handbook-admin", description=__doc__)
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("init", help="Create the collection and its text index")
    load = sub.add_parser("load", help="Upsert passages from a JSONL export")
    load.add_argument("path")
    load.add_argument("--batch-size", type=int, default=128)
    sub.add_parser("count", help="Print the number of stored passages")
    return parser


async def run(args: argparse.Namespace, settings: AppSettings) -> int:
    store = build_passage_store(settings)
    await store.connect()
    try:
        if args.command == "count":
            print(await store.count())
            return 0

        if not isinstance(store, QdrantPassageStore):
            logger.error("'%s' needs PASSAGE_BACKEND=qdrant", args.command)
            return 2

        result = await store.ensure_collection(settings.embedding_dim)
        if not result.ok:
            return _report(result.error)
        if args.command == "init":
            print(f"Collection '{store.collection}' ready")
            return 0

        passages = await asyncio.to_thread(load_jsonl, args.path)
        wrong_dim = [p.id for p in passages if len(p.vector) != settings.embedding_dim]
        if wrong_dim:
            logger.warning(
                "Skipping %d passages without a %d-d vector", len(wrong_dim), settings.embedding_dim
            )
        upsert = await store.upsert(
            (p for p in passages if len(p.vector) == settings.embedding_dim),
            batch_size=args.batch_size,
        )
        if not upsert.ok:
            return _report(upsert.error)
        print(f"Loaded {upsert.value} passages into '{store.collection}'")
        return 0
    except DomainError as ex:
        return _report(ex)
    finally:
        await store.close()


def _report(err: DomainError | None) -> int:
    print(f"[ERROR] {type(err).__name__}: {err}")
    return 1


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = AppSettings()
    configure_logging(settings.log_level)
    return asyncio.run(run(args, settings))


if __name__ == "__main__":
    raise SystemExit(main())
