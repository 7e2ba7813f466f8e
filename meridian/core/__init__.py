"""Database models, schemas, and utilities."""
