"""
services/ - Application Layer
==============================
Caller-facing orchestration on top of the repositories: paging, summaries,
async wrappers, file export/import and charts.
"""
