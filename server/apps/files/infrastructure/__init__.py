"""Infrastructure layer for files app.

This package contains integrations with external systems:
- S3-compatible object storage backend (S3/MinIO/R2)
- Storage key, share token and MIME type helpers

Keep infrastructure concerns separate from business logic.
"""
