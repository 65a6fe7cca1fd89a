"""
Test support utilities for dataspy tests.

Helpers that are not fixtures but are shared across test modules.
"""
