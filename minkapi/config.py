"""Service configuration and defaults."""

from __future__ import annotations

from dataclasses import dataclass

PROGRAM_NAME = "minkapi"

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 8008
DEFAULT_WATCH_QUEUE_SIZE = 100
DEFAULT_WATCH_TIMEOUT = 30.0
DEFAULT_KUBECONFIG_PATH = "/tmp/minkapi.yaml"


@dataclass
class MinKAPIConfig:
    """Settings for an in-memory API service.

    ``watch_timeout`` is in seconds.
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    kubeconfig_path: str = DEFAULT_KUBECONFIG_PATH
    watch_timeout: float = DEFAULT_WATCH_TIMEOUT
    watch_queue_size: int = DEFAULT_WATCH_QUEUE_SIZE

    def address(self) -> str:
        """Return the ``host:port`` address the service binds to."""
        return f"{self.host}:{self.port}"