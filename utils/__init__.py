"""
utils/ - Shared Utilities
=========================
Logging setup shared by every layer.
"""
