"""Script to re-index every note, regardless of what is already indexed."""

import asyncio
import sys
from pathlib import Path

# Add the parent directory to the path so we can import from notes_index
sys.path.insert(0, str(Path(__file__).parent.parent))

from notes_index.config.settings import settings
from run_sync import run


async def main():
    """Main entry point."""
    notes_dir = sys.argv[1] if len(sys.argv) > 1 else settings.NOTES_DIR
    print(f"Full indexing of {notes_dir}...")
    await run(full=True, notes_dir=notes_dir)
    print("Done!")


if __name__ == "__main__":
    asyncio.run(main())
