"""
Elastic Agent installers.

An installer describes how the agent package gets into a box: which compose
profile and service host it, where the package is mounted, and the commands
that install and start it. Installers are declared in YAML, keyed by the base
image name used in step text ("centos", "debian").
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List

import yaml

logger = logging.getLogger(__name__)

REQUIRED_KEYS = ("artifact", "profile", "image", "service", "tag", "install_cmds")


class InstallerError(ValueError):
    """Exception raised for invalid installer definitions."""

    pass


@dataclass
class ElasticAgentInstaller:
    """Recipe for installing the agent in a compose service."""

    name: str  # artifact file name
    profile: str  # compose profile the box is added to
    image: str  # compose service file layered on the profile
    service: str  # compose service name
    tag: str  # docker tag of the box
    path: str  # host path of the artifact
    install_cmds: List[str]
    post_install_cmds: List[List[str]] = field(default_factory=list)

    @property
    def target_path(self) -> str:
        """Path of the artifact inside the box."""
        return "/" + self.name

    @property
    def env_prefix(self) -> str:
        """Prefix of the compose variables configuring this service."""
        return self.service.replace("-", "_")

    def container_name(self, index: int = 1) -> str:
        return f"{self.profile}_{self.service}_{index}"

    def compose_env(self, container_name: str) -> Dict[str, str]:
        """Variables consumed by the service compose file."""
        return {
            f"{self.env_prefix}Tag": self.tag,
            f"{self.env_prefix}ContainerName": container_name,
            f"{self.env_prefix}AgentBinarySrcPath": self.path,
            f"{self.env_prefix}AgentBinaryTargetPath": self.target_path,
        }


def _read_yaml(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
        if not isinstance(data, dict):
            return {}
        return data


def _render(value: str, variables: Dict[str, str]) -> str:
    return value.format(**variables)


def build_installer(
    key: str, cfg: Dict[str, Any], version: str, binary_dir: str
) -> ElasticAgentInstaller:
    """Create an installer from its YAML mapping."""
    missing = [k for k in REQUIRED_KEYS if k not in cfg]
    if missing:
        raise InstallerError(f"installer '{key}' is missing keys: {', '.join(missing)}")

    artifact = str(cfg["artifact"]).format(version=version)
    variables = {"artifact": artifact, "version": version}

    install_cmds = cfg["install_cmds"]
    if not isinstance(install_cmds, list):
        raise InstallerError(f"installer '{key}': install_cmds must be a list")

    post_install = cfg.get("post_install_cmds") or []
    if not all(isinstance(cmd, list) for cmd in post_install):
        raise InstallerError(f"installer '{key}': post_install_cmds must be a list of commands")

    return ElasticAgentInstaller(
        name=artifact,
        profile=str(cfg["profile"]),
        image=str(cfg["image"]),
        service=str(cfg["service"]),
        tag=str(cfg["tag"]),
        path=os.path.join(binary_dir, artifact),
        install_cmds=[_render(str(arg), variables) for arg in install_cmds],
        post_install_cmds=[
            [_render(str(arg), variables) for arg in cmd] for cmd in post_install
        ],
    )


def load_installers(path: str, version: str, binary_dir: str) -> Dict[str, ElasticAgentInstaller]:
    """
    Load every installer declared in a YAML file.

    Args:
        path: YAML file with a top-level "installers" mapping
        version: Agent version used to render artifact names
        binary_dir: Host directory holding the artifacts

    Returns:
        Installers keyed by image name
    """
    data = _read_yaml(path)
    raw = data.get("installers")
    if not isinstance(raw, dict):
        raise InstallerError(f"{path}: 'installers' must be a mapping")

    installers = {}
    for key, cfg in raw.items():
        if not isinstance(cfg, dict):
            raise InstallerError(f"installer '{key}' must be a mapping")
        installers[key] = build_installer(key, cfg, version, binary_dir)

    logger.debug(f"Loaded {len(installers)} installers from {path}: {sorted(installers)}")
    return installers
