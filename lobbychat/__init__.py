"""Lobby chat: a stateless JWT-authenticated chat server and a polling client."""

__version__ = "0.1.0"
