"""Docker container backend.

One long-lived container per workspace. The container name is derived
from the absolute workspace path (basename + short hash), so repeated runs
against the same workspace reuse it. Creation and start happen on first
use. All docker access goes through the docker CLI.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import hashlib
import json
import logging
import subprocess
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from autogoals.backends.base import CommandBackend, ExternalToolError
from autogoals.schemas import CommandResult, utc_now_iso

DEFAULT_IMAGE = "autogoals/devbox:latest"
CONTAINER_WORKDIR = "/workspace"
WORKSPACE_LABEL = "autogoals.workspace"
CREATED_LABEL = "autogoals.created"
CONTAINER_STATE_FILE = Path(".autogoals") / "container.json"

DOCKER_UNAVAILABLE = (
    "Docker daemon not found. Start Docker Desktop or install Docker Engine."
)


@dataclass
class ContainerInfo:
    """Subset of docker inspect/ps output."""

    id: str
    name: str
    state: str  # docker's own status: running, exited, created, paused, ...
    created_at: str = ""
    labels: Dict[str, str] = field(default_factory=dict)

    @property
    def workspace(self) -> str:
        return self.labels.get(WORKSPACE_LABEL, "")


@dataclass
class ContainerState:
    """Persisted in <workspace>/.autogoals/container.json."""

    container_id: str
    container_name: str
    created_at: str
    last_used: str


def container_name(workspace: Path) -> str:
    """Stable container name for a workspace path."""
    abs_path = str(Path(workspace).expanduser().resolve())
    digest = hashlib.sha256(abs_path.encode("utf-8")).hexdigest()[:8]
    dir_name = Path(abs_path).name or "root"
    return f"autogoals-{dir_name}-{digest}"


def _parse_labels(raw: str) -> Dict[str, str]:
    """Parse docker ps 'k=v,k2=v2' label strings."""
    labels = {}
    for part in raw.split(","):
        if "=" in part:
            key, value = part.split("=", 1)
            labels[key.strip()] = value.strip()
    return labels


class DockerClient:
    """Thin wrapper over the docker CLI."""

    def __init__(self, docker_bin: str = "docker"):
        self.docker_bin = docker_bin
        self.logger = logging.getLogger(__name__)

    def _run(self, args: List[str], check: bool = True) -> subprocess.CompletedProcess:
        try:
            result = subprocess.run(
                [self.docker_bin, *args],
                capture_output=True,
                encoding="utf-8",
                errors="replace",
            )
        except FileNotFoundError:
            raise ExternalToolError(
                f"'{self.docker_bin}' command not found. Install Docker Engine or Docker Desktop."
            )
        if check and result.returncode != 0:
            raise ExternalToolError(
                f"docker {args[0]} failed (exit {result.returncode}): {result.stderr.strip()}"
            )
        return result

    def is_running(self) -> bool:
        """Check if the docker daemon answers."""
        try:
            return self._run(["info"], check=False).returncode == 0
        except ExternalToolError:
            return False

    def create_container(
        self,
        name: str,
        image: str,
        workspace_path: Path,
        env: Optional[Dict[str, str]] = None,
        labels: Optional[Dict[str, str]] = None,
    ) -> str:
        """Create and start a container; returns its id."""
        args = ["run", "-d", "--name", name]
        for key, value in (labels or {}).items():
            args += ["--label", f"{key}={value}"]
        args += ["-v", f"{workspace_path}:{CONTAINER_WORKDIR}", "-w", CONTAINER_WORKDIR]
        for key, value in (env or {}).items():
            args += ["-e", f"{key}={value}"]
        # Keep the container alive between docker exec calls
        args += [image, "sleep", "infinity"]

        self.logger.info(f"Creating container {name} from {image}")
        return self._run(args).stdout.strip()

    def start_container(self, name: str) -> None:
        self._run(["start", name])

    def unpause_container(self, name: str) -> None:
        self._run(["unpause", name])

    def stop_container(self, name: str) -> None:
        self._run(["stop", name])

    def remove_container(self, name: str, force: bool = False) -> None:
        args = ["rm"]
        if force:
            args.append("-f")
        self._run(args + [name])

    def inspect(self, name: str) -> Optional[ContainerInfo]:
        """Container info, or None if it does not exist."""
        result = self._run(["inspect", "--format", "{{json .}}", name], check=False)
        if result.returncode != 0 or not result.stdout.strip():
            return None
        data = json.loads(result.stdout)
        return ContainerInfo(
            id=data["Id"],
            name=data["Name"].lstrip("/"),
            state=data["State"]["Status"],
            created_at=data.get("Created", ""),
            labels=(data.get("Config") or {}).get("Labels") or {},
        )

    def list_containers(self, label: Optional[str] = None) -> List[ContainerInfo]:
        args = ["ps", "-a"]
        if label:
            args += ["--filter", f"label={label}"]
        args += ["--format", "{{json .}}"]
        result = self._run(args)

        containers = []
        for line in result.stdout.splitlines():
            if not line.strip():
                continue
            data = json.loads(line)
            containers.append(
                ContainerInfo(
                    id=data.get("ID", ""),
                    name=data.get("Names", ""),
                    state=data.get("State", ""),
                    created_at=data.get("CreatedAt", ""),
                    labels=_parse_labels(data.get("Labels", "")),
                )
            )
        return containers

    def exec(self, name: str, command: str, env: Optional[Dict[str, str]] = None) -> CommandResult:
        """Run a bash command inside a running container."""
        args = ["exec"]
        for key, value in (env or {}).items():
            args += ["-e", f"{key}={value}"]
        args += [name, "bash", "-c", command]
        result = self._run(args, check=False)
        return CommandResult(
            command=command,
            exit_code=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
        )


class ContainerManager:
    """Per-workspace container lifecycle: exists / running / stopped."""

    def __init__(self, client: Optional[DockerClient] = None, image: str = DEFAULT_IMAGE):
        self.client = client or DockerClient()
        self.image = image
        self.logger = logging.getLogger(__name__)

    def _state_file(self, workspace: Path) -> Path:
        return Path(workspace) / CONTAINER_STATE_FILE

    def load_container_state(self, workspace: Path) -> Optional[ContainerState]:
        """Load .autogoals/container.json; a missing or unreadable file is no state."""
        state_file = self._state_file(workspace)
        if not state_file.exists():
            return None
        try:
            return ContainerState(**json.loads(state_file.read_text(encoding="utf-8")))
        except (json.JSONDecodeError, TypeError):
            self.logger.warning(f"Ignoring unreadable container state: {state_file}")
            return None

    def save_container_state(self, workspace: Path, state: ContainerState) -> None:
        state_file = self._state_file(workspace)
        state_file.parent.mkdir(parents=True, exist_ok=True)
        state_file.write_text(json.dumps(asdict(state), indent=2) + "\n", encoding="utf-8")

    def is_docker_running(self) -> bool:
        return self.client.is_running()

    def get_container(self, name: str) -> Optional[ContainerInfo]:
        """Inspect a container by name; None if it does not exist."""
        return self.client.inspect(name)

    def ensure_docker(self) -> None:
        if not self.is_docker_running():
            raise ExternalToolError(DOCKER_UNAVAILABLE)

    def get_or_create(self, workspace: Path, env: Optional[Dict[str, str]] = None) -> str:
        """Return the running container for a workspace, creating it if needed.

        Args:
            workspace: Workspace directory, mounted at /workspace.
            env: Environment passed to a newly created container.

        Returns:
            Container name.

        Raises:
            ExternalToolError: If docker is unavailable or a docker call fails.
        """
        self.ensure_docker()

        abs_path = Path(workspace).expanduser().resolve()
        name = container_name(abs_path)
        info = self.get_container(name)

        if info is not None:
            if info.state == "paused":
                self.client.unpause_container(name)
            elif info.state != "running":
                self.logger.info(f"Starting stopped container {name}")
                self.client.start_container(name)

            state = self.load_container_state(abs_path)
            if state:
                state.last_used = utc_now_iso()
                self.save_container_state(abs_path, state)
            return name

        now = utc_now_iso()
        container_id = self.client.create_container(
            name=name,
            image=self.image,
            workspace_path=abs_path,
            env=env,
            labels={WORKSPACE_LABEL: str(abs_path), CREATED_LABEL: now},
        )
        self.save_container_state(
            abs_path,
            ContainerState(
                container_id=container_id,
                container_name=name,
                created_at=now,
                last_used=now,
            ),
        )
        return name

    def execute(
        self,
        workspace: Path,
        command: str,
        env: Optional[Dict[str, str]] = None,
    ) -> CommandResult:
        name = self.get_or_create(workspace, env)
        return self.client.exec(name, command, env)

    def status(self, workspace: Path) -> Optional[ContainerInfo]:
        self.ensure_docker()
        return self.get_container(container_name(workspace))

    def stop(self, workspace: Path) -> bool:
        """Stop the workspace container if running. Returns True if stopped."""
        info = self.status(workspace)
        if info is None or info.state != "running":
            return False
        self.client.stop_container(info.name)
        return True

    def remove(self, workspace: Path, force: bool = False) -> bool:
        """Remove the workspace container. Returns False if there was none."""
        info = self.status(workspace)
        if info is None:
            return False
        self.client.remove_container(info.name, force=force)
        state_file = self._state_file(workspace)
        if state_file.exists():
            state_file.unlink()
        return True

    def list_containers(self) -> List[ContainerInfo]:
        """All AutoGoals containers on this host."""
        self.ensure_docker()
        return self.client.list_containers(WORKSPACE_LABEL)


class DockerBackend(CommandBackend):
    """Runs commands inside the workspace container."""

    name = "docker"

    def __init__(self, manager: Optional[ContainerManager] = None):
        self.manager = manager or ContainerManager()

    def execute(
        self,
        workspace: Path,
        command: str,
        env: Optional[Dict[str, str]] = None,
    ) -> CommandResult:
        return self.manager.execute(workspace, command, env)
