#!/usr/bin/env python3
"""
CLI interface for inspecting a job queue.
"""

import argparse
import asyncio
import json
import sys

from mongo_job_queue.config import Config
from mongo_job_queue.queue.monitoring import QueueStats, collect_queue_stats


def display_queue_stats(stats: QueueStats, collection: str) -> None:
    """Print a queue snapshot."""
    print(f"\n{'='*60}")
    print(f"QUEUE: {collection}")
    print(f"{'='*60}")
    print(f"📅 Snapshot: {stats.timestamp.strftime('%Y-%m-%d %H:%M:%S')} UTC")
    print(f"\n📄 JOBS:")
    print(f"   Total: {stats.total_jobs}")
    print(f"   ⏳ Ready: {stats.ready}")
    print(f"   💤 Sleeping or locked: {stats.sleeping}")
    print(f"   🔁 Recurring: {stats.recurring}")
    print(f"   🏁 Retired recurring: {stats.retired_recurring}")


async def _snapshot(config: Config, as_json: bool, watch: int) -> None:
    store = config.get_job_store()
    await store.initialize()
    try:
        while True:
            stats = await collect_queue_stats(store, config.get_queue_config())
            if as_json:
                print(json.dumps(stats.to_dict()))
            else:
                display_queue_stats(stats, store.collection_name)

            if not watch:
                break
            await asyncio.sleep(watch)
    finally:
        await store.close()


def main(argv=None):
    """Main entry point for queue monitoring."""
    parser = argparse.ArgumentParser(
        description="Inspect a MongoDB job queue"
    )

    parser.add_argument(
        '--config', '-c',
        help='Path to configuration file'
    )

    parser.add_argument(
        '--json',
        action='store_true',
        help='Print one JSON object per snapshot'
    )

    parser.add_argument(
        '--watch',
        type=int,
        default=0,
        help='Refresh every N seconds until interrupted (default: print once)'
    )

    args = parser.parse_args(argv)

    try:
        config = Config(args.config)
        asyncio.run(_snapshot(config, args.json, args.watch))
    except KeyboardInterrupt:
        pass
    except Exception as e:
        print(f"❌ Error: {str(e)}", file=sys.stderr)
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
