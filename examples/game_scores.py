"""Example: record and update game scores with offline-friendly edits.

This script shows how edits are queued locally, collapsed per field and sent
in one request, and how a failed save keeps the edits for a later retry.

Configuration (objectsync.yaml):
    server:
      url: http://localhost:1337/parse
      application_id: my-app
      client_key: my-client-key
    retry:
      max_attempts: 3

Usage:
    python examples/game_scores.py objectsync.yaml
"""

import asyncio
import logging
import sys

from objectsync import ObjectSyncClient, ObjectSyncError, load_config

logger = logging.getLogger(__name__)


async def record_scores(config_path: str) -> None:
    config = load_config(config_path)

    async with ObjectSyncClient(config) as client:
        score = client.object("GameScore")
        score.set("player", "Sean")
        score.increment("score", 10)
        score.increment("score", 5)
        score.add_unique("badges", ["first-win"])

        # Both increments go out as a single Increment(15)
        logger.info(f"Pending edits: {score.pending.encode()}")

        try:
            await client.save(score)
        except ObjectSyncError as e:
            logger.error(f"Save failed ({e.code.name}), edits kept: {score.pending.encode()}")
            return

        logger.info(f"Saved GameScore {score.object_id}: score={score['score']}")

        top = await client.query("GameScore", where={"score": {"$gte": 10}}, order="-score", limit=5)
        for entry in top:
            logger.info(f"{entry.get('player')}: {entry.get('score')}")


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    asyncio.run(record_scores(sys.argv[1] if len(sys.argv) > 1 else "objectsync.yaml"))


if __name__ == "__main__":
    main()
