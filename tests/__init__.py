"""
Tests for Smart Finder.

=== COVERAGE ===
- hashing, ignore patterns, directory walk
- SQLite store (PostgreSQL when TEST_DATABASE_URL is set)
- reconciliation passes and scheduling
- live watcher bridge (fake observer)
- use cases and HTTP API

=== RUN ===
    pip install -e ".[test]"
    pytest
"""
