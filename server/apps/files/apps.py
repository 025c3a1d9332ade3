"""Django app configuration for files app."""

from typing_extensions import override

from django.apps import AppConfig


class FilesConfig(AppConfig):
    """Configuration for the file storage app."""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'server.apps.files'
    label = 'files'
    verbose_name = 'File storage'

    @override
    def ready(self) -> None:
        """Connect storage cleanup signals."""
        from server.apps.files import signals  # noqa: F401
