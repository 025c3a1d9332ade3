"""Business logic for share links."""

import logging
from datetime import datetime

from django.core.exceptions import ValidationError
from django.utils import timezone

from server.apps.files.infrastructure.metadata import generate_share_token
from server.apps.files.logic.file_operations import get_file, get_owned_file
from server.apps.files.models import File

logger = logging.getLogger(__name__)

_SHARE_FIELDS = ('is_public', 'share_token', 'share_expires_at', 'updated_at')


def create_share_link(
    file_id: str,
    user_id: int,
    expires_at: datetime | None = None,
) -> File:
    """Make a file public and make sure it has a share token.

    An existing token is kept, so links already handed out stay valid.

    Args:
        file_id: ID of the file to share.
        user_id: ID of the requesting user.
        expires_at: When the link stops working, None for never.

    Returns:
        Updated File instance with share_token set.

    Raises:
        NotFoundError: If file is missing, trashed or owned by someone else.
        ValidationError: If expires_at is in the past.
    """
    if expires_at is not None and expires_at <= timezone.now():
        raise ValidationError('Share expiry must be in the future')

    file_instance = get_file(file_id, user_id)

    file_instance.is_public = True
    if not file_instance.share_token:
        file_instance.share_token = generate_share_token()
    file_instance.share_expires_at = expires_at
    file_instance.save(update_fields=list(_SHARE_FIELDS))

    logger.info(
        'Share link created: ID=%s, expires=%s',
        file_instance.id,
        expires_at,
    )
    return file_instance


def revoke_share_link(file_id: str, user_id: int) -> File:
    """Make a file private and drop its share token.

    Sharing it again later mints a new token.

    Args:
        file_id: ID of the file.
        user_id: ID of the requesting user.

    Returns:
        Updated File instance.

    Raises:
        NotFoundError: If file is missing or owned by someone else.
    """
    file_instance = get_owned_file(file_id, user_id)

    file_instance.is_public = False
    file_instance.share_token = None
    file_instance.share_expires_at = None
    file_instance.save(update_fields=list(_SHARE_FIELDS))

    logger.info('Share link revoked: ID=%s', file_instance.id)
    return file_instance
