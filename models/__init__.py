"""Persistence: storage client, ORM models, stores and marshmallow schemas."""
