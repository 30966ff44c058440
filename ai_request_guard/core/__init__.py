"""
Core modules for AI Request Guard.

This package contains the provider-agnostic retry executor, backoff
calculation, error classification and request hashing.
"""
