"""Command backends: where worker commands run.

- local: bash on the host, in the workspace directory
- docker: docker exec into a per-workspace container

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

from autogoals.backends.base import CommandBackend, ExternalToolError
from autogoals.backends.docker import (
    DEFAULT_IMAGE,
    ContainerInfo,
    ContainerManager,
    DockerBackend,
    DockerClient,
    container_name,
)
from autogoals.backends.local import LocalBackend

BACKENDS = ("local", "docker")


def get_backend(name: str, image: str = DEFAULT_IMAGE) -> CommandBackend:
    """Build a backend by name.

    Raises:
        ValueError: If the name is unknown.
    """
    if name == "local":
        return LocalBackend()
    if name == "docker":
        return DockerBackend(ContainerManager(image=image))
    raise ValueError(f"unknown backend '{name}'. Valid backends: {', '.join(BACKENDS)}")


__all__ = [
    "BACKENDS",
    "CommandBackend",
    "ContainerInfo",
    "ContainerManager",
    "DockerBackend",
    "DockerClient",
    "ExternalToolError",
    "LocalBackend",
    "container_name",
    "get_backend",
]
