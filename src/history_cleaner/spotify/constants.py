"""Spotify API URLs, batch ceilings and retry defaults."""

# Spotify Auth
SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"

# Spotify Web API base
SPOTIFY_API_BASE = "https://api.spotify.com/v1"

# Spotify Web API endpoints
ME_URL = f"{SPOTIFY_API_BASE}/me"
TRACKS_URL = f"{SPOTIFY_API_BASE}/tracks"
ALBUMS_URL = f"{SPOTIFY_API_BASE}/albums"
ARTISTS_URL = f"{SPOTIFY_API_BASE}/artists"

# Documented ceilings for the "Get Several ..." endpoints
TRACKS_BATCH_LIMIT = 50
ALBUMS_BATCH_LIMIT = 20
ARTISTS_BATCH_LIMIT = 50

# Retry defaults
DEFAULT_MAX_RETRIES = 5
DEFAULT_RETRY_BASE_DELAY = 1.0  # seconds
DEFAULT_MAX_RETRY_DELAY = 60.0  # seconds, cap for exponential backoff
DEFAULT_MAX_RETRY_AFTER = 300.0  # seconds, larger Retry-After values are ignored
DEFAULT_REQUEST_TIMEOUT = 30.0  # seconds

# Steady-state pacing between consecutive batches
DEFAULT_BATCH_PACING = 0.1  # seconds
