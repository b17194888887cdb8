"""chefherd settings."""

import logging
from typing import Optional

import pydantic
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ValidationError

_logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Connection and behavior settings, read from ``CHEFHERD_*`` variables.

    Attributes:
        server_url: Base URL of the Chef server organization
        client_name: API client the process acts as; also the lock owner
        token: Bearer token for the server
        timeout: HTTP timeout in seconds
        env: ``test`` makes locks succeed without touching the server
        atomic_create: Whether the store may refuse to overwrite lock items
    """

    server_url: str = "https://localhost/organizations/default"
    client_name: str = "chefherd"
    token: Optional[str] = None
    timeout: float = 30.0
    env: str = "production"
    atomic_create: bool = False

    model_config = SettingsConfigDict(env_prefix="CHEFHERD_", extra="ignore")

    @property
    def testing(self) -> bool:
        return self.env == "test"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the environment.

        Raises:
            ValidationError: if a variable does not parse as its setting's type
        """
        try:
            settings = cls()
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid CHEFHERD_* setting: {e}") from e
        _logger.debug("Settings: server %s as %s (%s)", settings.server_url, settings.client_name, settings.env)
        return settings
