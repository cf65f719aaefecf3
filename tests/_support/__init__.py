"""
Test support utilities for cdc-spine tests.

Helpers that don't fit as pytest fixtures but are shared across test files.
"""
