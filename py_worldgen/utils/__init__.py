"""
Shared helpers for randomness and logging.
"""
