"""Threads to Telegram channel reposter."""

__version__ = "0.1.0"
