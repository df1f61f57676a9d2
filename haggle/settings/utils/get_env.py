import os

import dj_database_url
from django.core.exceptions import ImproperlyConfigured

TRUTHY = {"true", "1", "t", "yes", "on"}


class EnvHandler:
    """
    Reads settings from the process environment. ``.env`` files are loaded
    by django-environ in ``base.py`` before anything here runs.
    """

    def _raw(self, variable_name, default):
        value = os.environ.get(variable_name)
        if value is not None:
            return value
        if default is None:
            raise ImproperlyConfigured(
                f"Setting '{variable_name}' is required but not set in the environment"
            )
        return default

    def get(self, variable_name, default=None, cast_to=str):
        """
        Value of ``variable_name`` cast with ``cast_to``. Booleans accept
        true/1/t/yes/on in any case. Raises ImproperlyConfigured when a
        variable without a default is missing or cannot be cast.
        """
        value = self._raw(variable_name, default)
        if cast_to is bool:
            return value if isinstance(value, bool) else str(value).lower() in TRUTHY

        try:
            return cast_to(value)
        except (ValueError, TypeError):
            raise ImproperlyConfigured(
                f"Setting '{variable_name}' must be a {cast_to.__name__}, got {value!r}"
            )

    def list(self, variable_name, default=None, separator=","):
        """Comma separated value as a list of non-empty strings."""
        value = self._raw(variable_name, default)
        if isinstance(value, (list, tuple)):
            return list(value)
        return [item.strip() for item in value.split(separator) if item.strip()]

    def db(self, variable_name="DATABASE_URL", default=None):
        """Database URL parsed into a DATABASES entry with persistent connections."""
        return dj_database_url.parse(
            self.get(variable_name, default=default),
            conn_max_age=600,
            conn_health_checks=True,
        )


env = EnvHandler()
