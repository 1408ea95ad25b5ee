"""
Test suite for schemasync.

This package contains tests for all schemasync components:
- Unit tests for individual components
- Integration tests against real SQLite database files
"""
