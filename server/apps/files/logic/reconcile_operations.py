"""Business logic for reconciling object storage with the database.

Uploads and deletes touch two systems that fail independently. These
helpers find what a crash can leave behind:
- dangling files: DB rows whose object is missing from storage
- orphaned objects: objects in storage that no DB row references
"""

import logging

from django.db.models import QuerySet

from server.apps.files.logic.file_operations import get_storage
from server.apps.files.logic.trash_operations import delete_file_record
from server.apps.files.models import File

logger = logging.getLogger(__name__)


def find_dangling_files(
    files: QuerySet[File] | None = None,
) -> list[File]:
    """Find files whose object no longer exists in storage.

    Args:
        files: Files to check, every file (including trash) by default.

    Returns:
        Files with a missing object.
    """
    if files is None:
        files = File.all_objects.all()

    storage = get_storage()
    dangling = [
        file_instance
        for file_instance in files.select_related('user').iterator()
        if not storage.exists(file_instance.storage_key)
    ]

    logger.info('Found %d files with missing objects', len(dangling))
    return dangling


def find_orphaned_objects(prefix: str = '') -> list[str]:
    """Find storage objects that no file references.

    Args:
        prefix: Only look at keys under this prefix (e.g. '42/').

    Returns:
        Storage keys without a file row.
    """
    keys = get_storage().list_prefix(prefix)
    known = set(
        File.all_objects.filter(
            storage_key__startswith=prefix,
        ).values_list('storage_key', flat=True),
    )
    orphaned = [key for key in keys if key not in known]

    logger.info(
        'Found %d orphaned objects under prefix %r',
        len(orphaned),
        prefix,
    )
    return orphaned


def purge_dangling_file(file_instance: File) -> None:
    """Drop the DB row of a file whose object is gone and release quota.

    Args:
        file_instance: File with a missing object.
    """
    if not delete_file_record(file_instance):
        return

    logger.warning(
        'Removed file with missing object: %s (size: %d)',
        file_instance.storage_key,
        file_instance.size_bytes,
    )


def purge_orphaned_object(storage_key: str) -> None:
    """Delete an object that no file references.

    Args:
        storage_key: Key of the orphaned object.
    """
    get_storage().delete(storage_key)
    logger.warning('Removed orphaned object: %s', storage_key)
