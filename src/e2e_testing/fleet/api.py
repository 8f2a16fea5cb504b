"""
Fleet (Kibana ingest-manager) REST client.

Wraps the endpoints the Fleet scenarios rely on: setup, agent configs,
enrollment tokens, agents and data streams. Every request is sent with basic
auth, a JSON content type and the kbn-xsrf header Kibana requires.
"""

import json
import logging
from typing import List, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .. import http_client
from ..config import Config
from ..errors import AgentNotFoundError, FleetNotReadyError, MalformedResponseError
from ..http_client import HTTPRequest
from .models import (
    Agent,
    AgentConfigList,
    AgentList,
    DataStream,
    DataStreamList,
    EnrollmentToken,
    EnrollmentTokenResponse,
    SetupStatus,
)

logger = logging.getLogger(__name__)

FLEET_AGENTS_PATH = "/api/ingest_manager/fleet/agents"
FLEET_AGENTS_UNENROLL_PATH = "/api/ingest_manager/fleet/agents/{agent_id}/unenroll"
FLEET_ENROLLMENT_TOKEN_PATH = "/api/ingest_manager/fleet/enrollment-api-keys"
FLEET_SETUP_PATH = "/api/ingest_manager/fleet/setup"
AGENT_CONFIGS_PATH = "/api/ingest_manager/agent_configs"
DATA_STREAMS_PATH = "/api/ingest_manager/data_streams"

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_response(model: Type[ModelT], body: str) -> ModelT:
    """
    Deserialize a response body into a typed model.

    Raises:
        MalformedResponseError: If the body is not JSON or lacks required fields
    """
    try:
        return model.model_validate_json(body)
    except ValidationError as e:
        logger.error(f"Could not parse response into {model.__name__}: {e}")
        raise MalformedResponseError(
            f"Unexpected {model.__name__} response: {e.error_count()} validation errors",
            body=body,
        ) from e


class FleetClient:
    """Client for the Fleet management API exposed by Kibana."""

    def __init__(self, config: Config | None = None):
        self.config = config or Config()
        self.base_url = self.config.kibana_url

    def _request(self, path: str) -> HTTPRequest:
        return HTTPRequest(
            url=self.base_url + path,
            basic_auth_user=self.config.kibana_username,
            basic_auth_password=self.config.kibana_password,
            headers={
                "Content-Type": "application/json",
                "kbn-xsrf": self.config.kibana_xsrf,
            },
            timeout=self.config.http_timeout,
        )

    def create_fleet_configuration(self) -> None:
        """Force the recreation of the Fleet setup."""
        request = self._request(FLEET_SETUP_PATH)
        request.payload = json.dumps({"forceRecreate": True}).encode("utf-8")

        body = http_client.post(request)
        logger.debug(f"Fleet setup done: {body}")

    def check_fleet_configuration(self) -> SetupStatus:
        """
        Ensure the Fleet setup is ready and has no missing requirements.

        Raises:
            FleetNotReadyError: If Kibana reports the setup is not ready
        """
        logger.debug("Ensuring Fleet setup was initialised")
        body = http_client.get(self._request(FLEET_SETUP_PATH))
        status = parse_response(SetupStatus, body)

        if not status.is_ready or status.missing_requirements:
            logger.error(f"Kibana has not been initialised: {body}")
            raise FleetNotReadyError(f"Kibana has not been initialised: {body}")

        logger.info("Kibana setup initialised")
        return status

    def get_default_config_id(self) -> str:
        """Return the id of the first (default) agent config."""
        body = http_client.get(self._request(AGENT_CONFIGS_PATH))
        configs = parse_response(AgentConfigList, body)
        logger.debug(f"Fleet configs retrieved: count={len(configs.items)}")

        if not configs.items:
            raise MalformedResponseError("Fleet returned no agent configs", body=body)
        return configs.items[0].id

    def create_enrollment_token(self, name: str, config_id: str) -> EnrollmentToken:
        """Create a new enrollment token bound to an agent config."""
        request = self._request(FLEET_ENROLLMENT_TOKEN_PATH)
        request.payload = json.dumps({"config_id": config_id, "name": name}).encode("utf-8")

        body = http_client.post(request)
        token = parse_response(EnrollmentTokenResponse, body).item

        logger.debug(f"Fleet token created: tokenId={token.id}, apiKeyId={token.api_key_id}")
        return token

    def delete_enrollment_token(self, token_id: str) -> None:
        """Revoke an enrollment token."""
        request = self._request(f"{FLEET_ENROLLMENT_TOKEN_PATH}/{token_id}")
        http_client.delete(request)
        logger.debug(f"Fleet token revoked: tokenId={token_id}")

    def unenroll_agent(self, agent_id: str) -> None:
        """Un-enroll an agent from Fleet."""
        request = self._request(FLEET_AGENTS_UNENROLL_PATH.format(agent_id=agent_id))
        http_client.post(request)
        logger.debug(f"Fleet agent was unenrolled: agentID={agent_id}")

    def list_agents(self) -> List[Agent]:
        """List agents, including inactive ones."""
        request = self._request(FLEET_AGENTS_PATH)
        request.encode_url = False
        request.query_string = "page=1&perPage=20&showInactive=true"

        body = http_client.get(request)
        return parse_response(AgentList, body).agents

    def get_agents_by_hostname(self, hostname: str) -> List[Agent]:
        """
        Return the listed agents running on hostname.

        A host that was un-enrolled and enrolled again shows up more than once,
        the inactive agent alongside the new one.

        Raises:
            AgentNotFoundError: If no listed agent runs on hostname
        """
        matches = []
        for agent in self.list_agents():
            logger.debug(f"Agent status retrieved: status={agent.status}, hostname={agent.hostname}")
            if agent.hostname == hostname:
                matches.append(agent)

        if not matches:
            raise AgentNotFoundError(hostname)
        return matches

    def get_agent_id_by_hostname(self, hostname: str) -> str:
        """Return the id of the agent running on hostname, preferring an online one."""
        agents = self.get_agents_by_hostname(hostname)
        online = [agent for agent in agents if agent.is_online]
        agent_id = (online or agents)[0].id
        logger.debug(f"Agent ID retrieved: hostname={hostname}, agentID={agent_id}")
        return agent_id

    def is_agent_online(self, hostname: str) -> bool:
        """
        Report whether an agent running on hostname is online.

        Raises:
            AgentNotFoundError: If no listed agent runs on hostname
        """
        return any(agent.is_online for agent in self.get_agents_by_hostname(hostname))

    def get_data_streams(self) -> List[DataStream]:
        """Return the registered data streams, empty before any agent reports."""
        body = http_client.get(self._request(DATA_STREAMS_PATH))
        data_streams = parse_response(DataStreamList, body).data_streams
        logger.debug(f"Data Streams retrieved: count={len(data_streams)}")
        return data_streams
