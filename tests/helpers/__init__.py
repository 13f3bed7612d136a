"""Shared test helpers for the taskcli test suite."""
