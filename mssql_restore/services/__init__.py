"""Restore services: backup fetching and the restore pipeline."""
