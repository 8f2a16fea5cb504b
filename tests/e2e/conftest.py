"""
End-to-end scenario configuration and fixtures.

Scenarios run against real containers: the Fleet stack is started once per
session from the ingest-manager compose profile, and every scenario gets a
fresh context that is torn down after it. The scenarios are skipped unless
E2E_ENABLED=true and Docker answers a ping.
"""

import logging
import tempfile
from pathlib import Path

import pytest

import docker
from docker.errors import DockerException
from e2e_testing.config import Config
from e2e_testing.errors import FleetNotReadyError
from e2e_testing.fleet import steps as fleet_steps
from e2e_testing.fleet.api import FleetClient
from e2e_testing.installers import load_installers
from e2e_testing.logs import setup_logging
from e2e_testing.metricbeat import steps as metricbeat_steps
from e2e_testing.polling import BackoffPolicy, Retry, Success, poll_until
from e2e_testing.services import ServiceManager

logger = logging.getLogger(__name__)

FLEET_PROFILE = "ingest-manager"
# Kibana needs a while to accept the Fleet setup after its container is healthy
FLEET_SETUP_TIMEOUT = 300


def pytest_configure(config):
    """Set up logging for the scenarios."""
    setup_logging()


def pytest_runtest_setup(item):
    """Skip scenarios when end-to-end runs are disabled or Docker is missing."""
    if not Config().e2e_enabled:
        pytest.skip("E2E_ENABLED is not set to true")

    if item.get_closest_marker("docker"):
        try:
            docker.from_env().ping()
        except DockerException:
            pytest.skip("Docker not available")


@pytest.fixture(scope="session")
def e2e_config():
    """Validated configuration for the session."""
    config = Config()
    errors = config.validate()
    if errors:
        pytest.fail(f"Invalid e2e configuration: {'; '.join(errors)}")

    logger.info(f"e2e configuration: {config.get_startup_summary()}")
    return config


@pytest.fixture(scope="session")
def policy(e2e_config):
    return BackoffPolicy.from_config(e2e_config)


@pytest.fixture(scope="session")
def service_manager(e2e_config):
    return ServiceManager(e2e_config)


@pytest.fixture(scope="session")
def fleet_client(e2e_config):
    return FleetClient(e2e_config)


@pytest.fixture(scope="session")
def profile_env(e2e_config):
    """Variables consumed by the profile compose file."""
    return {
        "stackVersion": e2e_config.stack_version,
        "kibanaVersion": e2e_config.stack_version,
    }


@pytest.fixture(scope="session")
def fleet_stack(e2e_config, service_manager, fleet_client, profile_env):
    """
    Start the Fleet stack and set up Fleet once per session.

    Yields:
        Id of the default agent config
    """
    service_manager.start_profile(FLEET_PROFILE, profile_env)

    def fleet_is_set_up():
        try:
            return Success(fleet_steps.setup(fleet_client))
        except FleetNotReadyError as e:
            return Retry(str(e))

    try:
        config_id = poll_until(
            fleet_is_set_up,
            BackoffPolicy.from_config(e2e_config, max_elapsed_time=FLEET_SETUP_TIMEOUT),
            description="Fleet setup",
        )
        yield config_id
    finally:
        service_manager.stop_profile(FLEET_PROFILE, profile_env)


@pytest.fixture
def fleet_ctx(e2e_config, fleet_stack, fleet_client, service_manager, policy, profile_env):
    """Fleet scenario context, cleaned up after the scenario."""
    ctx = fleet_steps.FleetContext(
        config=e2e_config,
        client=fleet_client,
        services=service_manager,
        installers=load_installers(
            e2e_config.installers_file, e2e_config.stack_version, e2e_config.agent_binary_dir
        ),
        policy=policy,
        profile_env=dict(profile_env),
        config_id=fleet_stack,
    )
    yield ctx
    fleet_steps.teardown(ctx)


@pytest.fixture
def metricbeat_ctx(e2e_config, service_manager, policy):
    """MySQL scenario context, cleaned up after the scenario."""
    ctx = metricbeat_steps.MetricbeatContext(
        config=e2e_config,
        services=service_manager,
        policy=policy,
        output_dir=Path(tempfile.mkdtemp(prefix="mysql-", dir=e2e_config.metrics_output_dir)),
    )
    yield ctx
    metricbeat_steps.teardown(ctx)
