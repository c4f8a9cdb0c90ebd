"""
Feed Sync Engine

Ingests web, video-channel, forum and audio feeds on a schedule, normalizes
them into a single article model and serves incremental deltas to clients.
"""

__version__ = "1.0.0"
