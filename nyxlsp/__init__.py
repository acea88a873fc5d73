"""Language Server Protocol client toolkit: framing, protocol types, a server client and document helpers."""

__version__ = "0.1.0"

__all__ = ["client", "documents", "protocol", "transport"]