"""
models/ - Domain Layer
======================
Plain value types for student records, paging state and aggregate statistics.
No database or I/O dependencies.
"""
