"""Summarize YouTube, TikTok and Instagram videos from their transcripts."""

__version__ = "0.3.0"
