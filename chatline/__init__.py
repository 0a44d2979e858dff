"""Chatline: chat session and connection lifecycle core for support widgets."""

__version__ = "0.1.0"
