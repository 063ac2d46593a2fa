"""
Integration tests for docstore.

These tests run against an in-memory SQLite database through aiosqlite.

Run integration tests:
    pytest tests/integration/ -v
"""
