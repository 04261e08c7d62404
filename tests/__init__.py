"""Rocketship test suite."""
