"""
Fleet Scenario Steps

Step handlers for the Fleet-mode scenarios: deploying an agent into a box,
enrolling it with a token, and observing its status and the data streams it
produces. Every handler receives the FleetContext of the running scenario;
no state is kept at module level.

Eventually consistent observations (agent online/offline, data streams) are
made through poll_until. Enrolling with a revoked token is asserted directly:
the enroll command is expected to fail once, so it is not polled.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict

from ..config import Config
from ..errors import (
    AgentNotFoundError,
    MalformedResponseError,
    ServiceError,
    UnexpectedEnrollmentError,
)
from ..installers import ElasticAgentInstaller
from ..polling import BackoffPolicy, Fatal, Outcome, Retry, Success, poll_until
from ..services import ServiceManager
from .api import FleetClient

logger = logging.getLogger(__name__)

DEFAULT_IMAGE = "centos"


@dataclass
class FleetContext:
    """State shared by the steps of one Fleet scenario."""

    config: Config
    client: FleetClient
    services: ServiceManager
    installers: Dict[str, ElasticAgentInstaller]
    policy: BackoffPolicy
    # variables handed to docker compose
    profile_env: Dict[str, str] = field(default_factory=dict)
    enrolled_agent_id: str = ""
    image: str = ""  # base image used to install the agent
    cleanup: bool = False
    config_id: str = ""  # agent config the tokens are bound to
    current_token: str = ""
    current_token_id: str = ""
    token_revoked: bool = False
    hostname: str = ""  # hostname of the agent container
    extra_containers: int = 0
    sleep: Callable[[float], None] = time.sleep
    clock: Callable[[], float] = time.monotonic

    @property
    def installer(self) -> ElasticAgentInstaller:
        try:
            return self.installers[self.image]
        except KeyError:
            raise ValueError(
                f"No installer for image '{self.image}', known: {sorted(self.installers)}"
            ) from None


def setup(client: FleetClient) -> str:
    """Initialise Fleet and return the id of the default agent config."""
    logger.debug("Creating Fleet setup")
    client.create_fleet_configuration()
    client.check_fleet_configuration()
    return client.get_default_config_id()


def deploy_agent_to_fleet(
    ctx: FleetContext, installer: ElasticAgentInstaller, container_name: str
) -> None:
    """Add the agent box to the profile and install the agent package in it."""
    ctx.profile_env.update(installer.compose_env(container_name))

    try:
        ctx.services.add_services_to_compose(installer.profile, [installer.service], ctx.profile_env)
    except ServiceError:
        logger.error(f"Could not run the target box: service={installer.service}, tag={installer.tag}")
        raise

    try:
        ctx.services.exec_in_service(
            installer.profile, installer.image, installer.service, installer.install_cmds, ctx.profile_env
        )
    except ServiceError as e:
        logger.error(
            f"Could not install the agent in the box: command={installer.install_cmds}, "
            f"image={installer.image}, service={installer.service}, error={e}"
        )
        raise

    for cmd in installer.post_install_cmds:
        ctx.services.exec_in_service(
            installer.profile, installer.image, installer.service, cmd, ctx.profile_env
        )


def enroll_agent(ctx: FleetContext, installer: ElasticAgentInstaller, token: str) -> None:
    """Enroll the agent installed in the box with the given token."""
    cmd = ["elastic-agent", "enroll", ctx.config.fleet_enroll_url, token, "-f", "--insecure"]
    try:
        ctx.services.exec_in_service(
            installer.profile, installer.image, installer.service, cmd, ctx.profile_env
        )
    except ServiceError as e:
        logger.error(
            f"Could not enroll the agent with the token: image={installer.image}, "
            f"service={installer.service}, tag={installer.tag}, error={e}"
        )
        raise


def an_agent_is_deployed_to_fleet(ctx: FleetContext) -> None:
    an_agent_running_on_os_is_deployed_to_fleet(ctx, DEFAULT_IMAGE)


def an_agent_running_on_os_is_deployed_to_fleet(ctx: FleetContext, image: str) -> None:
    logger.debug(f"Deploying an agent to Fleet with base image: {image}")

    ctx.image = image
    installer = ctx.installer
    container_name = installer.container_name(1)

    ctx.cleanup = True
    deploy_agent_to_fleet(ctx, installer, container_name)

    ctx.hostname = ctx.services.get_container_hostname(container_name)

    token = ctx.client.create_enrollment_token(f"Test token for {ctx.hostname}", ctx.config_id)
    ctx.current_token = token.api_key
    ctx.current_token_id = token.id
    ctx.token_revoked = False

    enroll_agent(ctx, installer, ctx.current_token)

    # agents left by earlier scenarios are still listed, so match on this box
    ctx.enrolled_agent_id = poll_until(
        enrolled_agent_predicate(ctx),
        ctx.policy,
        description=f"agent {ctx.hostname} listed",
        sleep=ctx.sleep,
        clock=ctx.clock,
    )


def enrolled_agent_predicate(ctx: FleetContext) -> Callable[[], Outcome]:
    """Observe the id of the agent enrolled from the scenario's box."""

    def predicate() -> Outcome:
        try:
            return Success(ctx.client.get_agent_id_by_hostname(ctx.hostname))
        except AgentNotFoundError as e:
            return Retry(str(e))
        except MalformedResponseError as e:
            return Fatal(str(e))

    return predicate


def agent_status_predicate(ctx: FleetContext, expect_online: bool) -> Callable[[], Outcome]:
    """Observe the status of the scenario's agent once."""

    def predicate() -> Outcome:
        try:
            online = ctx.client.is_agent_online(ctx.hostname)
        except AgentNotFoundError as e:
            return Retry(str(e))
        except MalformedResponseError as e:
            return Fatal(str(e))

        if online == expect_online:
            return Success(online)
        if expect_online:
            return Retry("The Agent is not online yet", observed=online)
        return Retry("The Agent is still online", observed=online)

    return predicate


def the_agent_is_listed_in_fleet_as_online(ctx: FleetContext) -> None:
    logger.debug("Checking agent is listed in Fleet as online")
    poll_until(
        agent_status_predicate(ctx, expect_online=True),
        ctx.policy,
        description=f"agent {ctx.hostname} online",
        sleep=ctx.sleep,
        clock=ctx.clock,
    )


def the_agent_is_not_listed_as_online_in_fleet(ctx: FleetContext) -> None:
    logger.debug("Checking if the agent is not listed as online in Fleet")
    poll_until(
        agent_status_predicate(ctx, expect_online=False),
        ctx.policy,
        description=f"agent {ctx.hostname} offline",
        sleep=ctx.sleep,
        clock=ctx.clock,
    )


def the_host_is_restarted(ctx: FleetContext) -> None:
    installer = ctx.installer
    try:
        ctx.services.run_command(
            installer.profile, [installer.image], ["restart", installer.service], ctx.profile_env
        )
    except ServiceError:
        logger.error(f"Could not restart the service: image={installer.image}, service={installer.service}")
        raise

    logger.debug(f"The service has been restarted: image={installer.image}, service={installer.service}")


def data_streams_predicate(ctx: FleetContext) -> Callable[[], Outcome]:
    def predicate() -> Outcome:
        try:
            count = len(ctx.client.get_data_streams())
        except MalformedResponseError as e:
            return Fatal(str(e))

        if count == 0:
            return Retry("There are no datastreams yet", observed=count)
        return Success(count)

    return predicate


def system_package_dashboards_are_listed_in_fleet(ctx: FleetContext) -> int:
    logger.debug("Checking system Package dashboards in Fleet")
    return poll_until(
        data_streams_predicate(ctx),
        ctx.policy,
        description="datastreams present",
        sleep=ctx.sleep,
        clock=ctx.clock,
    )


def the_agent_is_unenrolled(ctx: FleetContext) -> None:
    logger.debug(f"Un-enrolling agent in Fleet: agentID={ctx.enrolled_agent_id}")
    ctx.client.unenroll_agent(ctx.enrolled_agent_id)


def the_agent_is_reenrolled_on_the_host(ctx: FleetContext) -> None:
    logger.debug("Re-enrolling the agent on the host with same token")
    enroll_agent(ctx, ctx.installer, ctx.current_token)


def the_enrollment_token_is_revoked(ctx: FleetContext) -> None:
    logger.debug(f"Revoking enrollment token: tokenID={ctx.current_token_id}")
    ctx.client.delete_enrollment_token(ctx.current_token_id)
    ctx.token_revoked = True
    logger.debug(f"Token was revoked: tokenID={ctx.current_token_id}")


def an_attempt_to_enroll_a_new_agent_fails(ctx: FleetContext) -> None:
    """
    Deploy a second box and check enrolling it with the revoked token fails.

    Raises:
        UnexpectedEnrollmentError: If the enrollment succeeds
    """
    logger.debug("Enrolling a new agent with a revoked token")

    installer = ctx.installer
    ctx.extra_containers += 1
    container_name = installer.container_name(1 + ctx.extra_containers)

    deploy_agent_to_fleet(ctx, installer, container_name)

    try:
        enroll_agent(ctx, installer, ctx.current_token)
    except ServiceError as e:
        logger.debug(
            f"As expected, it's not possible to enroll an agent with a revoked token: error={e}"
        )
        return

    logger.error(
        f"The agent was enrolled although the token was previously revoked: "
        f"tokenID={ctx.current_token_id}"
    )
    raise UnexpectedEnrollmentError(
        "The agent was enrolled although the token was previously revoked"
    )


def teardown(ctx: FleetContext) -> None:
    """Revoke the scenario's token and remove the agent boxes it created."""
    if not ctx.cleanup:
        return

    try:
        if ctx.current_token_id and not ctx.token_revoked:
            ctx.client.delete_enrollment_token(ctx.current_token_id)
            ctx.token_revoked = True
    finally:
        # the box goes away even if Kibana refused the revocation
        installer = ctx.installer
        ctx.services.remove_services_from_compose(
            installer.profile, [installer.service], ctx.profile_env
        )
        ctx.cleanup = False
