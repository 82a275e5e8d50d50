"""
Seed Script: Index Knowledge-Base Records to Qdrant
Reads ContextRecord lines from a JSONL file, embeds them, and upserts them
into the knowledge_base collection.

Each line: {"id": "...", "category": "leetcode|resume|note", "text": "...", "metadata": {...}}
Leetcode records keep the problem itself as JSON in "text".

Usage:
    python seed_knowledge_base.py records.jsonl [--dry-run] [--batch-size=100] [--recreate]
"""

import asyncio
import json
import sys
from collections import Counter
from pathlib import Path
from typing import List

from dotenv import load_dotenv
from pydantic import ValidationError

# Load environment variables
load_dotenv()

from embeddings import get_embedding_generator
from embeddings.qdrant_manager import get_qdrant_manager
from generation.schemas import CATEGORIES, ContextRecord


def load_records(path: Path) -> List[ContextRecord]:
    """Parse and validate every line; a bad line aborts the whole run."""
    records = []
    with path.open("r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                records.append(ContextRecord.model_validate(json.loads(line)))
            except (json.JSONDecodeError, ValidationError) as e:
                raise SystemExit(f"✗ {path}:{line_no}: {e}")
    return records


async def seed(path: Path, dry_run: bool = False, batch_size: int = 100, recreate: bool = False):
    print("=" * 70)
    print("KNOWLEDGE BASE SEED")
    print("=" * 70)

    records = load_records(path)
    counts = Counter(r.category for r in records)
    print(f"\nFound {len(records)} records in {path}")
    for category in CATEGORIES:
        print(f"  {category}: {counts.get(category, 0)}")

    if dry_run:
        print("\n[DRY RUN MODE] - No changes will be made")
        return

    qdrant = get_qdrant_manager()
    await qdrant.create_collection(recreate=recreate)

    generator = get_embedding_generator()
    embeddings = generator.generate_embeddings_batch(
        [r.text for r in records],
        batch_size=batch_size,
        show_progress=True,
    )

    indexed = 0
    for i in range(0, len(records), batch_size):
        indexed += await qdrant.index_records(
            records[i:i + batch_size], embeddings[i:i + batch_size]
        )
        print(f"  ✓ Indexed {indexed}/{len(records)}")

    print("\n" + "=" * 70)
    print("SEED COMPLETE")
    print("=" * 70)
    for category in CATEGORIES:
        info = await qdrant.count(category)
        print(f"  {category}: {info['points_count']} points")


if __name__ == "__main__":
    args = [a for a in sys.argv[1:] if not a.startswith("-")]
    if not args:
        raise SystemExit(__doc__)

    dry_run = "--dry-run" in sys.argv or "-d" in sys.argv
    recreate = "--recreate" in sys.argv
    batch_size = 100
    for arg in sys.argv:
        if arg.startswith("--batch-size="):
            batch_size = int(arg.split("=")[1])

    asyncio.run(seed(Path(args[0]), dry_run=dry_run, batch_size=batch_size, recreate=recreate))
