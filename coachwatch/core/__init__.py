"""Core error types and helpers."""
