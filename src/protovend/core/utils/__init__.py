"""Shared helpers for protovend core modules."""
