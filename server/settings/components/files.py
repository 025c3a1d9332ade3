"""Settings for the files app (quota, trash, sharing)."""

from server.settings.components import config

# Presigned download URLs handed out to owners and share links
FILES_DOWNLOAD_URL_TTL = config(
    'FILES_DOWNLOAD_URL_TTL',
    cast=int,
    default=3600,
)

# Days a file stays in trash before `cleanup_trash` purges it
FILES_TRASH_RETENTION_DAYS = config(
    'FILES_TRASH_RETENTION_DAYS',
    cast=int,
    default=30,
)
