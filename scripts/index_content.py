#!/usr/bin/env python3
"""
Index every lesson and course from the database into the vector store.

Run: python scripts/index_content.py
     python scripts/index_content.py --only lessons --persist-dir ./chroma

Uses DATABASE_URL / CHROMA_PERSIST_DIR / CHROMA_COLLECTION from the environment unless
overridden.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

_project_root = Path(__file__).resolve().parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from api.config import build_engine, build_session_factory, create_db, get_settings  # noqa: E402
from api.repositories.sql import SqlCourseRepository, SqlLessonRepository  # noqa: E402
from infra.vector.chroma_store import ChromaStore  # noqa: E402
from infra.vector.ingest import ContentIndexer  # noqa: E402


def main() -> int:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Index lessons and courses for vector search.")
    parser.add_argument("--only", choices=["lessons", "courses"], default=None, help="Index one content type")
    parser.add_argument("--database-url", default=settings.database_url)
    parser.add_argument("--persist-dir", default=settings.chroma_persist_dir)
    parser.add_argument("--collection", default=settings.chroma_collection)
    args = parser.parse_args()

    if not args.persist_dir:
        print("No persist dir set (CHROMA_PERSIST_DIR or --persist-dir); an in-memory index would be lost.")
        return 1

    engine = build_engine(args.database_url)
    create_db(engine)
    factory = build_session_factory(engine)
    indexer = ContentIndexer(ChromaStore(collection_name=args.collection, persist_dir=args.persist_dir))

    total = 0
    if args.only in (None, "lessons"):
        for lesson in SqlLessonRepository(factory).list_all():
            count = indexer.index_lesson(lesson)
            print(f"lesson {lesson.id} ({lesson.title}): {count} chunks")
            total += count
    if args.only in (None, "courses"):
        for course in SqlCourseRepository(factory).list_all():
            count = indexer.index_course(course)
            print(f"course {course.id} ({course.title}): {count} chunks")
            total += count

    print(f"Indexed {total} chunks into '{args.collection}'.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
