"""
Observability utilities for the link metadata pipeline.

This package provides:
- redaction: URL/secret sanitization for safe logging
"""
