"""Script to run an indexing pass over the notes directory.

Usage:
    python scripts/run_sync.py          # incremental sync
    python scripts/run_sync.py --full   # re-index every note
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add the parent directory to the path so we can import from notes_index
sys.path.insert(0, str(Path(__file__).parent.parent))

from notes_index.config.settings import settings
from notes_index.db.db import close_db, get_session_maker, init_db
from notes_index.services.batch_indexer import BatchIndexer, IndexingResult
from notes_index.services.embeddings import Embedder
from notes_index.services.job_tracker import JobTracker
from notes_index.services.note_source import DirectoryNoteSource
from notes_index.services.note_store import NoteStore


def print_result(result: IndexingResult) -> None:
    print("=" * 50)
    print(f"{result.mode.capitalize()} run {result.status} (job {result.job_id})")
    print("=" * 50)
    print(f"Total:     {result.total_notes}")
    print(f"Processed: {result.processed_notes}")
    print(f"Failed:    {result.failed_notes}")
    if result.mode == "sync":
        print(f"Deleted:   {result.deleted_notes}")
    print(f"Elapsed:   {result.elapsed_seconds}s")
    print("=" * 50)


async def run(full: bool, notes_dir: str) -> IndexingResult:
    await init_db()
    embedder = Embedder()
    try:
        session_maker = get_session_maker()
        store = NoteStore(session_maker)
        indexer = BatchIndexer(
            DirectoryNoteSource(notes_dir, settings.NOTES_TRASH_FOLDER),
            store,
            embedder,
            JobTracker(session_maker),
        )
        result = await (indexer.run_full() if full else indexer.run_sync())
        print_result(result)
        print(f"Notes in index: {await store.count()}")
        return result
    finally:
        await embedder.close()
        await close_db()


async def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Index notes into the search database")
    parser.add_argument("--full", action="store_true", help="re-index every note instead of syncing changes")
    parser.add_argument("--notes-dir", default=settings.NOTES_DIR, help="directory of exported HTML notes")
    args = parser.parse_args()

    print("Full indexing..." if args.full else "Syncing notes...")
    await run(args.full, args.notes_dir)
    print("Done!")


if __name__ == "__main__":
    asyncio.run(main())
