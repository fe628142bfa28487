"""Catalog gateway implementations.

    SpotifyCatalogGateway - Spotify Web API over httpx.  Artist
    discographies, album search, and the user's followed artists, liked
    tracks and saved albums.
"""

from src.providers.catalog.spotify_gateway import SpotifyCatalogGateway

__all__ = ["SpotifyCatalogGateway"]
