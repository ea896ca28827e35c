"""ListenLens - listening analytics over the Spotify Web API."""

__version__ = "0.1.0"
