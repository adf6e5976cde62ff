"""Admission checks run by the store before it persists a write."""
