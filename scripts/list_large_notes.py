"""Script to list indexed notes whose converted text is unusually large."""

import argparse
import asyncio
import sys
from pathlib import Path

# Add the parent directory to the path so we can import from notes_index
sys.path.insert(0, str(Path(__file__).parent.parent))

from notes_index.config.settings import settings
from notes_index.db.db import close_db, get_session_maker, init_db
from notes_index.services.note_store import NoteStore


async def list_large_notes(min_size: int, limit: int) -> None:
    await init_db()
    try:
        notes = await NoteStore(get_session_maker()).list_large_notes(min_size, limit)
    finally:
        await close_db()

    if not notes:
        print(f"No notes larger than {min_size:,} characters")
        return

    print(f"Found {len(notes)} notes larger than {min_size:,} characters:")
    print("=" * 50)
    for note in notes:
        folder = note.folder_path or "(root)"
        modified = note.modification_time.isoformat() if note.modification_time else "unknown"
        print(f"{note.title}")
        print(f"  Folder:   {folder}")
        print(f"  Text:     {note.content_length:,} chars")
        print(f"  HTML:     {note.html_length:,} chars")
        print(f"  Modified: {modified}")
    print("=" * 50)


async def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="List large indexed notes")
    parser.add_argument("--min-size", type=int, default=settings.LARGE_NOTE_MIN_SIZE)
    parser.add_argument("--limit", type=int, default=20)
    args = parser.parse_args()
    await list_large_notes(args.min_size, args.limit)


if __name__ == "__main__":
    asyncio.run(main())
