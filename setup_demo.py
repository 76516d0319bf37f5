#!/usr/bin/env python3
"""
Setup script for the AnesIA knowledge base demo.
Seeds the sqlite remote store from the bundled documents and runs one load session.

The remote store is seeded without the deep procedure content, so the summary
shows the fallback merge completing it from the bundle.
"""

import asyncio
import logging
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))


async def run_session():
    from anesia_kb.config import get_settings
    from anesia_kb.db import BundleDirectory, SqliteRemoteStore
    from anesia_kb.orchestrator import LoadOrchestrator
    from anesia_kb.snapshots import SnapshotCache, SqliteSnapshotStore

    settings = get_settings()
    cache = SnapshotCache(SqliteSnapshotStore(settings.cache_db_path))

    async with LoadOrchestrator(SqliteRemoteStore(), BundleDirectory(), cache) as orchestrator:
        orchestrator.subscribe(lambda state: print(f"  state → {state.phase.value}"))
        return await orchestrator.wait()


def main():
    from anesia_kb.config import get_settings

    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print("=" * 60)
    print("AnesIA Knowledge Base Demo Setup")
    print("=" * 60)
    print()

    # Step 1: Seed the remote store
    print("Step 1: Seeding the sqlite remote store...")
    print("-" * 40)

    from anesia_kb.db.import_data import import_all_data

    results = import_all_data(include_deep=False)

    # Step 2: Run one load session
    print("\nStep 2: Running a load session...")
    print("-" * 40)

    state = asyncio.run(run_session())

    # Summary
    print("\n" + "=" * 60)
    print("Setup Complete!")
    print("=" * 60)
    print("\nData imported:")
    for table, count in results.items():
        print(f"  - {table:<16} {count:>6} records")

    print("\nSession state:")
    print(f"  - Phase:            {state.phase.value}")
    print(f"  - Error:            {state.error or '-'}")
    print(f"  - Index entries:    {len(state.procedure_index):>6}")
    print(f"  - Procedures:       {len(state.procedures):>6}")
    print(f"  - Drugs:            {len(state.drugs):>6}")
    print(f"  - Specialties:      {', '.join(state.specialties)}")

    pth = state.get_procedure("pth")
    if pth:
        refs = [f"{ref['drug_id']}/{ref['indication_tag']}" for ref in pth["quick"]["fr"]["drugs"]]
        print(f"\n  pth medication plan: {', '.join(refs)}")
        print(f"  pth deep content restored from bundle: {bool(pth['deep']['fr']['clinical'])}")
    print()


if __name__ == "__main__":
    main()
