"""Signal handlers for files app."""

import logging
from functools import partial

from django.db import transaction
from django.db.models.signals import post_delete
from django.dispatch import receiver

from server.apps.files.exceptions import StoreUnavailableError
from server.apps.files.logic.file_operations import get_storage
from server.apps.files.models import File

logger = logging.getLogger(__name__)


@receiver(post_delete, sender=File)
def delete_file_from_storage(
    sender: type[File],
    instance: File,
    **kwargs: object,
) -> None:
    """Delete object from storage once the File record delete commits.

    Covers rows deleted outside the lifecycle service, e.g. when a user
    is deleted and their files cascade. If the surrounding transaction
    rolls back, the row survives and so does its object.

    `purge_file` deletes the object before the row, so for it the
    scheduled delete finds nothing and succeeds.

    Args:
        sender: The File model class.
        instance: The File instance being deleted.
        **kwargs: Additional signal arguments.
    """
    if not instance.storage_key:
        return

    transaction.on_commit(
        partial(_delete_object, instance.storage_key),
        using=kwargs.get('using'),  # type: ignore[arg-type]
    )


def _delete_object(storage_key: str) -> None:
    try:
        get_storage().delete(storage_key)
    except StoreUnavailableError:
        # DB delete already committed, `reconcile_storage` finds the object
        logger.exception(
            'Failed to delete object from storage (orphaned): %s',
            storage_key,
        )
