"""Outbound HTTP adapters used by the relay."""
