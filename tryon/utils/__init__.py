"""Shared helpers: logging, correlation ids, retries."""
