"""Business logic layer for files app.

This package contains all business logic for the file lifecycle:
- Upload, read, update, download URLs and listing
- Trash, restore and permanent deletion
- Share links and public access
- Quota accounting and storage reconciliation

All business logic should be implemented here, separate from
models (data layer) and infrastructure (external systems).

Reference: https://github.com/dry-python
for decoupling business logic from Django views.
"""
