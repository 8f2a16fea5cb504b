"""Step handlers for the MySQL module scenarios."""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

import yaml

from ..config import Config
from ..polling import BackoffPolicy, Outcome, Retry, Success, poll_until
from ..services import Service, ServiceManager, new_metricbeat_service, new_mysql_service

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "metricbeat.yml"
DEFAULT_OUTPUT_FILENAME = "metricbeat"


@dataclass
class MetricbeatContext:
    """State shared by the steps of one MySQL scenario."""

    config: Config
    services: ServiceManager
    policy: BackoffPolicy
    output_dir: Path  # host directory mounted as the file output
    output_filename: str = DEFAULT_OUTPUT_FILENAME
    mysql_service: Optional[Service] = None
    metricbeat_service: Optional[Service] = None
    sleep: Callable[[float], None] = time.sleep
    clock: Callable[[], float] = time.monotonic


def mysql_module_config(mysql_host: str, filename: str) -> dict:
    """Metricbeat configuration enabling the mysql module and the file output."""
    return {
        "metricbeat.modules": [
            {
                "module": "mysql",
                "metricsets": ["status"],
                "period": "10s",
                "hosts": [f"root:secret@tcp({mysql_host}:3306)/"],
            }
        ],
        "output.file": {"path": "/metrics", "filename": filename},
    }


def mysql_is_running(ctx: MetricbeatContext, version: str) -> None:
    ctx.mysql_service = ctx.services.run(new_mysql_service(version))


def metricbeat_is_installed_and_configured_for_mysql_module(
    ctx: MetricbeatContext, version: str
) -> None:
    if ctx.mysql_service is None:
        raise ValueError("MySQL must be running before metricbeat is configured for it")

    ctx.output_dir.mkdir(parents=True, exist_ok=True)
    # metricbeat does not run as root inside its image
    ctx.output_dir.chmod(0o777)

    mysql_host = ctx.services.get_container_ip(ctx.mysql_service)
    config_file = ctx.output_dir / CONFIG_FILE_NAME
    config_file.write_text(
        yaml.safe_dump(mysql_module_config(mysql_host, ctx.output_filename), sort_keys=False),
        encoding="utf-8",
    )
    logger.debug(f"Metricbeat configuration written: {config_file}, mysql={mysql_host}")

    service = new_metricbeat_service(version, str(config_file), str(ctx.output_dir))
    ctx.metricbeat_service = ctx.services.run(service)


def _metrics_files(output_dir: Path, filename: str) -> List[Path]:
    # the configuration file lives in the same directory
    return sorted(
        p for p in output_dir.glob(f"{filename}*") if p.is_file() and p.name != CONFIG_FILE_NAME
    )


def metrics_file_predicate(ctx: MetricbeatContext, filename: str) -> Callable[[], Outcome]:
    def predicate() -> Outcome:
        files = _metrics_files(ctx.output_dir, filename)
        if not files:
            return Retry(f"The metrics file '{filename}' does not exist yet")

        size = sum(f.stat().st_size for f in files)
        if size == 0:
            return Retry(f"The metrics file '{filename}' is empty", observed=size)
        return Success(size)

    return predicate


def metricbeat_outputs_metrics_to_the_file(ctx: MetricbeatContext, filename: str) -> int:
    """Wait until metricbeat has written metrics; returns the bytes written."""
    if filename != ctx.output_filename:
        raise ValueError(
            f"Metricbeat writes to '{ctx.output_filename}', not to '{filename}'"
        )

    return poll_until(
        metrics_file_predicate(ctx, filename),
        ctx.policy,
        description=f"metrics written to {filename}",
        sleep=ctx.sleep,
        clock=ctx.clock,
    )


def teardown(ctx: MetricbeatContext) -> None:
    """Stop metricbeat, then MySQL, even when stopping metricbeat fails."""
    try:
        if ctx.metricbeat_service is not None:
            ctx.services.stop(ctx.metricbeat_service)
    finally:
        ctx.metricbeat_service = None
        try:
            if ctx.mysql_service is not None:
                ctx.services.stop(ctx.mysql_service)
        finally:
            ctx.mysql_service = None
