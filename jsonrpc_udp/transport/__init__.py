"""JSON Lines framing, correlation and UDP endpoints."""
