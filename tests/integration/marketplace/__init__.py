"""
Marketplace Service Integration Tests

Integration tests for the marketplace repository against a real PostgreSQL database.
Tests verify row-lock races, compare-and-swap transitions and atomic penalty transfers.
"""
