"""Input entities and response normalisation helpers."""
