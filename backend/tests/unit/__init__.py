"""
Unit Tests

Unit tests run in isolation without external dependencies.
The database is replaced by an in-memory repository or a mocked session.

These tests are fast and can run without Docker or any services running.
"""
