"""Test support utilities for replcheck tests."""
