"""Constants for listening-history files."""

import re

# Filename patterns, in order of preference
MERGED_HISTORY_PATTERN = re.compile(r"merged-streaming-history-(\d+)\.json$")
COMPLETE_HISTORY_PATTERN = re.compile(r"complete-listening-history-(\d+)\.json$")
HISTORY_FILE_PATTERNS = (MERGED_HISTORY_PATTERN, COMPLETE_HISTORY_PATTERN)

# Metadata field whose presence marks the merged-history schema
MERGED_EVENTS_FIELD = "totalPlayEvents"
COMPLETE_EVENTS_FIELD = "totalListeningEvents"

# ijson prefixes for the top-level sections
METADATA_PREFIX = "metadata"
SONGS_PREFIX = "songs.item"
