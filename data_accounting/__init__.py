"""Tamper-evident verification chains for page revisions."""
