"""Main entry point for the Spotify history cleaner."""

import asyncio
import logging
import sys
from pathlib import Path

from history_cleaner.consolidation import RuleTable
from history_cleaner.history import HistoryLoadError, find_latest_history_file
from history_cleaner.logging import configure_logging
from history_cleaner.pipeline import CleanerPipeline
from history_cleaner.settings import CleanerSettings
from history_cleaner.snapshots import SnapshotStore
from history_cleaner.spotify.tokens import SpotifyTokenManager

logger = logging.getLogger(__name__)


async def main() -> int:
    """Clean the newest history file and write a new snapshot. Returns the exit code."""
    settings = CleanerSettings()
    configure_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    logger.info("Spotify history cleaner starting...")

    history_path = find_latest_history_file(Path(settings.HISTORY_DIR))
    if history_path is None:
        logger.error("No listening history file found in %s", settings.HISTORY_DIR)
        return 1
    logger.info("Using history file %s", history_path)

    token_provider = SpotifyTokenManager(settings) if settings.has_spotify_credentials else None
    if token_provider is None:
        logger.warning("Spotify credentials not configured, enrichment will be skipped")

    store = SnapshotStore(Path(settings.OUTPUT_DIR))
    pipeline = CleanerPipeline(
        settings,
        rules=RuleTable(Path(settings.RULES_PATH)),
        token_provider=token_provider,
        snapshot_store=store,
    )

    try:
        result = await pipeline.run_file(history_path)
    except HistoryLoadError:
        logger.exception("Could not load listening history from %s", history_path)
        return 1

    timestamp = store.write(result)
    logger.info("Cleaner finished (snapshot %d, enriched=%s)", timestamp, result.enriched)
    return 0


def run() -> None:
    """Console-script wrapper around :func:`main`."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("KeyboardInterrupt received, shutting down")
        sys.exit(130)


if __name__ == "__main__":
    run()
