"""
Lyrics resolution: caches, local uploads and the provider chain.

Usage:
    from lyrics_engine.lyrics import LyricsService

    service = LyricsService(context, providers={"lrclib": LRCLibProvider(http)})
    entry = await service.get_or_fetch(song)
"""

from lyrics_engine.lyrics.service import LyricsService

__all__ = ["LyricsService"]
