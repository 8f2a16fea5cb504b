"""
Typed views over the Kibana ingest-manager responses.

Bodies are validated as soon as they are received, so a malformed response
fails at the request site instead of at an arbitrary field access later on.
Unknown fields are ignored.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class SetupStatus(BaseModel):
    """Response of GET fleet/setup."""

    is_ready: bool = Field(..., alias="isReady")
    missing_requirements: List[str] = Field(default_factory=list)


class AgentConfig(BaseModel):
    id: str
    name: Optional[str] = None


class AgentConfigList(BaseModel):
    """Response of GET agent_configs."""

    items: List[AgentConfig]


class EnrollmentToken(BaseModel):
    id: str
    api_key: str
    api_key_id: str
    name: Optional[str] = None
    config_id: Optional[str] = None
    active: bool = True


class EnrollmentTokenResponse(BaseModel):
    """Response of POST enrollment-api-keys."""

    item: EnrollmentToken


class AgentHost(BaseModel):
    hostname: str


class AgentLocalMetadata(BaseModel):
    host: AgentHost


class Agent(BaseModel):
    id: str
    status: str
    local_metadata: AgentLocalMetadata

    @property
    def hostname(self) -> str:
        return self.local_metadata.host.hostname

    @property
    def is_online(self) -> bool:
        return self.status.lower() == "online"


class AgentList(BaseModel):
    """Response of GET fleet/agents."""

    agents: List[Agent] = Field(..., alias="list")
    total: Optional[int] = None


class DataStream(BaseModel):
    index: str
    dataset: Optional[str] = None
    namespace: Optional[str] = None
    type: Optional[str] = None
    package: Optional[str] = None


class DataStreamList(BaseModel):
    """Response of GET data_streams."""

    data_streams: List[DataStream]
