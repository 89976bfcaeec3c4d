"""Persistence: ORM models and session management."""
