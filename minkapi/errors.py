"""Exceptions raised by the service."""

from __future__ import annotations

from minkapi.config import PROGRAM_NAME


class MinKAPIError(Exception):
    """Base class for service errors; the message starts with a fixed prefix."""

    base_message = f"{PROGRAM_NAME} error"

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        message = f"{self.base_message}: {detail}" if detail else self.base_message
        super().__init__(message)


class InitFailedError(MinKAPIError):
    """The service could not be initialised."""

    base_message = f"{PROGRAM_NAME} init failed"


class StartFailedError(MinKAPIError):
    """The service could not be started."""

    base_message = f"{PROGRAM_NAME} start failed"


class ServiceFailedError(MinKAPIError):
    """The running service failed."""

    base_message = f"{PROGRAM_NAME} service failed"


class MissingOptionError(MinKAPIError):
    """A required option was not given."""

    base_message = "missing option"


class LoadConfigTemplateError(MinKAPIError):
    """A configuration template could not be loaded or rendered."""

    base_message = "cannot load config template"