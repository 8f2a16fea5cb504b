"""
Service Lifecycle Management

This module provisions the Docker fixtures scenarios depend on. Two kinds of
services are supported:

- Single-container services (MySQL, Metricbeat) started through testcontainers
- Compose profiles (Fleet stack plus agent boxes) driven through the
  `docker compose` CLI, with per-service compose files layered on top of the
  profile file

Compose layout under the configured compose directory:
    profiles/<profile>/docker-compose.yml
    services/<service>/docker-compose.yml

All compose commands run with a timeout; failures raise ServiceError with the
exit code and stderr of the command.
"""

import logging
import os
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import docker
from docker.errors import DockerException, NotFound
from testcontainers.core.container import DockerContainer

from .config import Config
from .errors import ServiceError

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    """Result of a command execution."""

    exit_code: int
    stdout: str
    stderr: str
    elapsed_ms: int

    @property
    def success(self) -> bool:
        return self.exit_code == 0


def execute_with_timeout(
    command: List[str],
    timeout_seconds: int = 300,
    env: Optional[Dict[str, str]] = None,
    cwd: Optional[str] = None,
) -> ExecutionResult:
    """
    Execute a command with a timeout.

    Args:
        command: Command and arguments to execute
        timeout_seconds: Maximum execution time in seconds
        env: Extra environment variables, merged over the current environment
        cwd: Working directory for command execution

    Returns:
        ExecutionResult with exit code and captured output

    Raises:
        ValueError: If command or timeout is invalid
        ServiceError: If the command cannot be started or times out
    """
    if not command:
        raise ValueError("Command cannot be empty")

    if timeout_seconds <= 0:
        raise ValueError("Timeout must be positive")

    full_env = os.environ.copy()
    if env:
        full_env.update(env)

    logger.debug(f"Executing command with timeout {timeout_seconds}s: {' '.join(command)}")
    start_time = time.time()

    try:
        completed = subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=timeout_seconds,
            env=full_env,
            cwd=cwd,
        )
    except subprocess.TimeoutExpired as e:
        logger.error(f"Command timed out after {timeout_seconds}s: {' '.join(command)}")
        raise ServiceError(
            f"Command timed out after {timeout_seconds}s: {' '.join(command)}",
            exit_code=124,
            stderr=str(e.stderr or ""),
        ) from e
    except FileNotFoundError as e:
        logger.error(f"Command not found: {command[0]}")
        raise ServiceError(f"Command not found: {command[0]}", exit_code=127) from e

    elapsed_ms = int((time.time() - start_time) * 1000)
    logger.debug(f"Command completed: exit_code={completed.returncode}, elapsed={elapsed_ms}ms")

    return ExecutionResult(
        exit_code=completed.returncode,
        stdout=completed.stdout,
        stderr=completed.stderr,
        elapsed_ms=elapsed_ms,
    )


@dataclass
class Service:
    """A single-container service run outside of compose."""

    name: str
    image: str
    version: str
    env: Dict[str, str] = field(default_factory=dict)
    ports: List[int] = field(default_factory=list)
    # host path -> container path, mounted read-write
    volumes: Dict[str, str] = field(default_factory=dict)
    command: Optional[str] = None
    container: Optional[DockerContainer] = field(default=None, repr=False)

    @property
    def image_ref(self) -> str:
        return f"{self.image}:{self.version}"


def new_mysql_service(version: str) -> Service:
    return Service(
        name="mysql",
        image="mysql",
        version=version,
        env={"MYSQL_ROOT_PASSWORD": "secret"},
        ports=[3306],
    )


def new_metricbeat_service(version: str, config_file: str, output_dir: str) -> Service:
    """Metricbeat reading config_file and writing its file output to output_dir."""
    return Service(
        name="metricbeat",
        image="docker.elastic.co/beats/metricbeat",
        version=version,
        volumes={
            config_file: "/usr/share/metricbeat/metricbeat.yml",
            output_dir: "/metrics",
        },
        command="-e -strict.perms=false",
    )


class ServiceManager:
    """Runs single-container services and drives compose profiles."""

    def __init__(self, config: Config | None = None):
        self.config = config or Config()
        self.compose_dir = Path(self.config.compose_dir)

    def run(self, service: Service) -> Service:
        """Start a single-container service and attach the container to it."""
        container = DockerContainer(service.image_ref)
        for key, value in service.env.items():
            container = container.with_env(key, value)
        if service.ports:
            container = container.with_exposed_ports(*service.ports)
        for host_path, container_path in service.volumes.items():
            container = container.with_volume_mapping(host_path, container_path, "rw")
        if service.command:
            container = container.with_command(service.command)

        logger.info(f"Starting service: name={service.name}, image={service.image_ref}")
        try:
            container.start()
        except DockerException as e:
            logger.error(f"Could not run the service {service.name}: {e}")
            raise ServiceError(f"Could not run the service {service.name}: {e}") from e

        service.container = container
        return service

    def stop(self, service: Service) -> None:
        if service.container is None:
            return
        logger.info(f"Stopping service: name={service.name}")
        service.container.stop()
        service.container = None

    def get_container_ip(self, service: Service) -> str:
        """IP address of a running service on the default bridge network."""
        if service.container is None:
            raise ServiceError(f"Service {service.name} is not running")
        wrapped = service.container.get_wrapped_container()
        wrapped.reload()
        return wrapped.attrs["NetworkSettings"]["IPAddress"]

    def profile_file(self, profile: str) -> Path:
        return self.compose_dir / "profiles" / profile / "docker-compose.yml"

    def service_file(self, service: str) -> Path:
        return self.compose_dir / "services" / service / "docker-compose.yml"

    def compose_command(self, profile: str, composes: List[str], args: List[str]) -> List[str]:
        """Build a docker compose command line for a profile and its services."""
        command = ["docker", "compose", "-p", profile, "-f", str(self.profile_file(profile))]
        for compose in composes:
            command += ["-f", str(self.service_file(compose))]
        return command + args

    def _run_compose(
        self, profile: str, composes: List[str], args: List[str], env: Dict[str, str]
    ) -> ExecutionResult:
        command = self.compose_command(profile, composes, args)
        result = execute_with_timeout(
            command, timeout_seconds=self.config.command_timeout, env=env
        )
        if not result.success:
            logger.error(
                f"Compose command failed: command={' '.join(args)}, profile={profile}, "
                f"exit_code={result.exit_code}, stderr={result.stderr.strip()}"
            )
            raise ServiceError(
                f"Compose command '{' '.join(args)}' failed for profile {profile}",
                exit_code=result.exit_code,
                stderr=result.stderr,
            )
        return result

    def start_profile(self, profile: str, env: Dict[str, str]) -> None:
        """Start every service declared by a profile."""
        logger.info(f"Starting profile: {profile}")
        self._run_compose(profile, [], ["up", "-d", "--wait"], env)

    def stop_profile(self, profile: str, env: Dict[str, str]) -> None:
        logger.info(f"Stopping profile: {profile}")
        self._run_compose(profile, [], ["down", "--remove-orphans", "--volumes"], env)

    def add_services_to_compose(
        self, profile: str, services: List[str], env: Dict[str, str]
    ) -> None:
        """Start additional services on top of a running profile."""
        logger.debug(f"Adding services to compose: profile={profile}, services={services}")
        self._run_compose(profile, services, ["up", "-d"] + services, env)

    def remove_services_from_compose(
        self, profile: str, services: List[str], env: Dict[str, str]
    ) -> None:
        logger.debug(f"Removing services from compose: profile={profile}, services={services}")
        self._run_compose(profile, services, ["rm", "-f", "-s"] + services, env)

    def run_command(
        self, profile: str, composes: List[str], command: List[str], env: Dict[str, str]
    ) -> ExecutionResult:
        """Run an arbitrary compose command, e.g. ["restart", "centos"]."""
        return self._run_compose(profile, composes, command, env)

    def exec_in_service(
        self,
        profile: str,
        image: str,
        service: str,
        cmd: List[str],
        env: Dict[str, str],
        detach: bool = False,
    ) -> ExecutionResult:
        """Execute a command inside a compose service container."""
        args = ["exec", "-T"]
        if detach:
            args.append("-d")
        return self._run_compose(profile, [image], args + [service] + cmd, env)

    def get_container_hostname(self, container_name: str) -> str:
        """Hostname configured inside a container."""
        try:
            client = docker.from_env()
            container = client.containers.get(container_name)
        except NotFound as e:
            raise ServiceError(f"Container not found: {container_name}") from e
        except DockerException as e:
            raise ServiceError(f"Could not inspect container {container_name}: {e}") from e

        hostname = container.attrs["Config"]["Hostname"]
        logger.debug(f"Container hostname retrieved: container={container_name}, hostname={hostname}")
        return hostname
