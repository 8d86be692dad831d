"""End-to-end cleaning run: aggregate, consolidate, rank, enrich and summarize."""

import logging
from datetime import UTC, datetime, timedelta
from functools import partial
from pathlib import Path

from history_cleaner.aggregation import aggregate
from history_cleaner.builders import CollectionBuilder
from history_cleaner.constants import EntityKind
from history_cleaner.consolidation import Consolidator, RuleTable
from history_cleaner.enrichment import MetadataEnricher, TokenProvider
from history_cleaner.enrichment.enricher import ClientFactory
from history_cleaner.history import ListeningHistory, load_history
from history_cleaner.models import CollectionTotals, PipelineResult
from history_cleaner.ranking import album_identities, artist_identities, rank_with_previous, song_identities
from history_cleaner.settings import CleanerSettings
from history_cleaner.snapshots import PriorSnapshot, SnapshotStore
from history_cleaner.spotify.client import SpotifyClient
from history_cleaner.stats import backfill_stat_images, compute_stats

logger = logging.getLogger(__name__)


class CleanerPipeline:
    """Runs one cleaning pass over a listening history.

    Stages run strictly in order; each reads the complete output of the one
    before. Enrichment is skipped when disabled or when no token provider is
    given, and never fails the run.
    """

    def __init__(
        self,
        settings: CleanerSettings,
        *,
        rules: RuleTable | None = None,
        token_provider: TokenProvider | None = None,
        snapshot_store: SnapshotStore | None = None,
        client_factory: ClientFactory | None = None,
        now: datetime | None = None,
    ) -> None:
        self._settings = settings
        self._rules = rules or RuleTable(Path(settings.RULES_PATH))
        self._token_provider = token_provider
        self._snapshot_store = snapshot_store
        self._client_factory = client_factory or partial(
            SpotifyClient,
            max_retries=settings.SPOTIFY_MAX_RETRIES,
            retry_base_delay=settings.SPOTIFY_RETRY_BASE_DELAY,
            max_retry_delay=settings.SPOTIFY_MAX_RETRY_DELAY,
        )
        self._now = now

    async def run_file(self, path: Path) -> PipelineResult:
        """Load a history file and run the pipeline on it.

        Raises:
            HistoryLoadError: If the file is missing or cannot be parsed.
        """
        return await self.run(load_history(path))

    async def run(self, history: ListeningHistory) -> PipelineResult:
        settings = self._settings
        now = self._now or datetime.now(UTC)
        cutoff = now - timedelta(days=settings.RECENT_WINDOW_DAYS)
        logger.info(
            "Cleaning %d listening events across %d tracks (%d alias rules)",
            len(history.events),
            len(history.tracks),
            self._rules.rule_count,
        )

        # Aggregate and build raw per-kind records
        summaries = aggregate(history.events, history.tracks)
        consolidator = Consolidator(self._rules)
        builder = CollectionBuilder(consolidator, recent_cutoff=cutoff)
        raw_songs = builder.build_songs(summaries)
        raw_artists = builder.build_artists(summaries)
        raw_albums = builder.build_albums_with_songs(summaries)

        # Consolidate
        songs = consolidator.consolidate_songs(raw_songs)
        artists = consolidator.consolidate_artists(raw_artists)
        albums_with_songs = consolidator.consolidate_albums_with_songs(raw_albums)
        albums = consolidator.consolidate_albums(album.without_songs() for album in raw_albums)
        totals = {
            EntityKind.SONGS: CollectionTotals(original_total=len(raw_songs), consolidated_total=len(songs)),
            EntityKind.ARTISTS: CollectionTotals(original_total=len(raw_artists), consolidated_total=len(artists)),
            EntityKind.ALBUMS: CollectionTotals(original_total=len(raw_albums), consolidated_total=len(albums)),
            EntityKind.ALBUMS_WITH_SONGS: CollectionTotals(
                original_total=len(raw_albums), consolidated_total=len(albums_with_songs)
            ),
        }

        # Truncate and rank
        songs = rank_with_previous(songs, settings.TOP_SONGS_LIMIT, song_identities)
        artists = rank_with_previous(artists, settings.TOP_ARTISTS_LIMIT, artist_identities)
        albums = rank_with_previous(albums, settings.TOP_ALBUMS_LIMIT, album_identities)
        albums_with_songs = rank_with_previous(
            albums_with_songs, settings.TOP_ALBUMS_WITH_SONGS_LIMIT, album_identities
        )

        # Enrich, one kind at a time
        enriched = False
        if settings.ENRICHMENT_ENABLED and self._token_provider is not None:
            enricher = MetadataEnricher(
                self._token_provider,
                rules=self._rules,
                client_factory=self._client_factory,
                batch_pacing=settings.BATCH_PACING_SECONDS,
            )
            if await enricher.connect():
                prior = self._snapshot_store.load_previous() if self._snapshot_store else PriorSnapshot.empty()
                songs = await enricher.enrich_songs(songs, prior)
                artists = await enricher.enrich_artists(artists, prior)
                albums_with_songs = await enricher.enrich_albums_with_songs(albums_with_songs, prior)
                albums = await enricher.enrich_albums(albums, prior)
                enriched = True
        else:
            logger.info("Enrichment skipped (disabled or no Spotify credentials)")

        # Statistics over raw events
        stats = compute_stats(
            history.events,
            top_n=settings.STATS_TOP_N,
            total_listening_events=history.metadata.total_listening_events or None,
        )
        stats = backfill_stat_images(stats, songs, artists, albums)

        logger.info(
            "Cleaning complete: %d songs, %d albums, %d artists, %d albums with songs",
            len(songs),
            len(albums),
            len(artists),
            len(albums_with_songs),
        )
        return PipelineResult(
            songs=songs,
            albums=albums,
            artists=artists,
            albums_with_songs=albums_with_songs,
            stats=stats,
            totals=totals,
            total_listening_events=stats.total_listening_events,
            enriched=enriched,
        )
