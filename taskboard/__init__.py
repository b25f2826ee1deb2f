"""
Task board backend.

Per-user task categories and tasks behind session-token authentication, with
a storage abstraction that runs on an in-memory store or on any SQLAlchemy
database.
"""
