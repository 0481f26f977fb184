"""Vibes, worlds, world-moment streaming to NATS and JSON-RPC method helpers."""

__version__ = "0.1.0"

__all__ = ["models", "repository", "streaming", "rpc"]