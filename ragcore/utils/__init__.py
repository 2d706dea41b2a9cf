"""
Shared utilities: logging, exceptions and decorators.
"""
