"""Shared utilities for sanctuary."""
