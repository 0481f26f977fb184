"""JSON-RPC method registry, request builders and method-name normalising wrapper."""

__all__ = ["methods", "server_wrapper"]