"""Logging and metrics for cloudplane."""
