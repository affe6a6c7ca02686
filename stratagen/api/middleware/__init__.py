"""Request authentication helpers."""
