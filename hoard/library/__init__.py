"""Library — the project's private package library on disk.

This package provides the primitives for:
- Inspection: what is installed, and whether hoard installed it
- Content hashing and archive handling for package directories
- Transactional updates: staging, promotion and crash recovery
- Advisory locking so only one process updates a library at a time
"""
