"""
Unit tests for service lifecycle management.
"""

import subprocess
from unittest.mock import MagicMock, Mock, patch

import pytest
from docker.errors import DockerException, NotFound

from e2e_testing.errors import ServiceError
from e2e_testing.services import (
    ExecutionResult,
    ServiceManager,
    execute_with_timeout,
    new_metricbeat_service,
    new_mysql_service,
)


class TestExecuteWithTimeout:
    """Test the command runner."""

    @patch("e2e_testing.services.subprocess.run")
    def test_successful_command(self, mock_run):
        mock_run.return_value = Mock(returncode=0, stdout="ok\n", stderr="")

        result = execute_with_timeout(["echo", "ok"], timeout_seconds=10, env={"FOO": "bar"})

        assert result.success
        assert result.stdout == "ok\n"
        args, kwargs = mock_run.call_args
        assert args[0] == ["echo", "ok"]
        assert kwargs["timeout"] == 10
        assert kwargs["env"]["FOO"] == "bar"
        assert kwargs["capture_output"] is True

    @patch("e2e_testing.services.subprocess.run")
    def test_failing_command_is_reported(self, mock_run):
        mock_run.return_value = Mock(returncode=2, stdout="", stderr="boom")

        result = execute_with_timeout(["false"])

        assert not result.success
        assert result.exit_code == 2
        assert result.stderr == "boom"

    @patch("e2e_testing.services.subprocess.run")
    def test_timeout(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd=["sleep", "10"], timeout=1)

        with pytest.raises(ServiceError) as exc_info:
            execute_with_timeout(["sleep", "10"], timeout_seconds=1)

        assert exc_info.value.exit_code == 124

    @patch("e2e_testing.services.subprocess.run")
    def test_command_not_found(self, mock_run):
        mock_run.side_effect = FileNotFoundError()

        with pytest.raises(ServiceError) as exc_info:
            execute_with_timeout(["no-such-binary"])

        assert exc_info.value.exit_code == 127

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            execute_with_timeout([])
        with pytest.raises(ValueError):
            execute_with_timeout(["ls"], timeout_seconds=0)


class TestServiceDefinitions:
    def test_mysql_service(self):
        service = new_mysql_service("5.7.12")

        assert service.image_ref == "mysql:5.7.12"
        assert service.env == {"MYSQL_ROOT_PASSWORD": "secret"}
        assert service.ports == [3306]

    def test_metricbeat_service(self):
        service = new_metricbeat_service("7.8.0", "/tmp/m/metricbeat.yml", "/tmp/m")

        assert service.image_ref == "docker.elastic.co/beats/metricbeat:7.8.0"
        assert service.volumes == {
            "/tmp/m/metricbeat.yml": "/usr/share/metricbeat/metricbeat.yml",
            "/tmp/m": "/metrics",
        }


@pytest.fixture
def manager(mock_config):
    return ServiceManager(mock_config)


class TestSingleContainerServices:
    """Test services run through testcontainers."""

    @patch("e2e_testing.services.DockerContainer")
    def test_run_configures_container(self, mock_container_cls, manager):
        container = MagicMock()
        for method in ("with_env", "with_exposed_ports", "with_volume_mapping", "with_command"):
            getattr(container, method).return_value = container
        mock_container_cls.return_value = container

        service = manager.run(new_metricbeat_service("7.8.0", "/cfg.yml", "/out"))

        mock_container_cls.assert_called_once_with("docker.elastic.co/beats/metricbeat:7.8.0")
        container.with_volume_mapping.assert_any_call(
            "/cfg.yml", "/usr/share/metricbeat/metricbeat.yml", "rw"
        )
        container.with_command.assert_called_once_with("-e -strict.perms=false")
        container.start.assert_called_once()
        assert service.container is container

    @patch("e2e_testing.services.DockerContainer")
    def test_run_failure_raises_service_error(self, mock_container_cls, manager):
        container = MagicMock()
        container.with_env.return_value = container
        container.with_exposed_ports.return_value = container
        container.start.side_effect = DockerException("no daemon")
        mock_container_cls.return_value = container

        service = new_mysql_service("5.7.12")
        with pytest.raises(ServiceError, match="mysql"):
            manager.run(service)
        assert service.container is None

    def test_stop(self, manager):
        service = new_mysql_service("5.7.12")
        container = MagicMock()
        service.container = container

        manager.stop(service)
        manager.stop(service)

        container.stop.assert_called_once()
        assert service.container is None

    def test_get_container_ip(self, manager):
        service = new_mysql_service("5.7.12")
        wrapped = MagicMock()
        wrapped.attrs = {"NetworkSettings": {"IPAddress": "172.17.0.3"}}
        service.container = MagicMock()
        service.container.get_wrapped_container.return_value = wrapped

        assert manager.get_container_ip(service) == "172.17.0.3"
        wrapped.reload.assert_called_once()

    def test_get_container_ip_not_running(self, manager):
        with pytest.raises(ServiceError):
            manager.get_container_ip(new_mysql_service("5.7.12"))


class TestComposeProfiles:
    """Test the compose command lines."""

    def test_compose_command_layers_service_files(self, manager, mock_config):
        command = manager.compose_command("ingest-manager", ["centos-systemd"], ["up", "-d"])

        compose_dir = mock_config.compose_dir
        assert command == [
            "docker",
            "compose",
            "-p",
            "ingest-manager",
            "-f",
            f"{compose_dir}/profiles/ingest-manager/docker-compose.yml",
            "-f",
            f"{compose_dir}/services/centos-systemd/docker-compose.yml",
            "up",
            "-d",
        ]

    def test_packaged_compose_files_exist(self, manager):
        assert manager.profile_file("ingest-manager").is_file()
        assert manager.service_file("centos-systemd").is_file()
        assert manager.service_file("debian-systemd").is_file()

    @patch("e2e_testing.services.execute_with_timeout")
    def test_start_and_stop_profile(self, mock_execute, manager):
        mock_execute.return_value = ExecutionResult(0, "", "", 10)
        env = {"stackVersion": "7.8.0"}

        manager.start_profile("ingest-manager", env)
        manager.stop_profile("ingest-manager", env)

        up, down = [c[0][0] for c in mock_execute.call_args_list]
        assert up[-3:] == ["up", "-d", "--wait"]
        assert down[-3:] == ["down", "--remove-orphans", "--volumes"]
        assert mock_execute.call_args_list[0][1]["env"] == env
        assert mock_execute.call_args_list[0][1]["timeout_seconds"] == 300

    @patch("e2e_testing.services.execute_with_timeout")
    def test_add_and_remove_services(self, mock_execute, manager):
        mock_execute.return_value = ExecutionResult(0, "", "", 10)

        manager.add_services_to_compose("ingest-manager", ["centos-systemd"], {})
        manager.remove_services_from_compose("ingest-manager", ["centos-systemd"], {})

        add, remove = [c[0][0] for c in mock_execute.call_args_list]
        assert add[-3:] == ["up", "-d", "centos-systemd"]
        assert remove[-4:] == ["rm", "-f", "-s", "centos-systemd"]

    @patch("e2e_testing.services.execute_with_timeout")
    def test_exec_in_service(self, mock_execute, manager):
        mock_execute.return_value = ExecutionResult(0, "enrolled", "", 10)

        result = manager.exec_in_service(
            "ingest-manager",
            "centos-systemd",
            "centos-systemd",
            ["systemctl", "start", "elastic-agent"],
            {},
            detach=True,
        )

        assert result.stdout == "enrolled"
        command = mock_execute.call_args[0][0]
        assert command[-7:] == [
            "exec",
            "-T",
            "-d",
            "centos-systemd",
            "systemctl",
            "start",
            "elastic-agent",
        ]

    @patch("e2e_testing.services.execute_with_timeout")
    def test_failed_compose_command_raises(self, mock_execute, manager):
        mock_execute.return_value = ExecutionResult(1, "", "no such service", 10)

        with pytest.raises(ServiceError) as exc_info:
            manager.run_command("ingest-manager", ["centos-systemd"], ["restart", "centos"], {})

        assert exc_info.value.exit_code == 1
        assert exc_info.value.stderr == "no such service"


class TestContainerHostname:
    @patch("e2e_testing.services.docker.from_env")
    def test_hostname(self, mock_from_env, manager):
        container = Mock(attrs={"Config": {"Hostname": "a1b2c3d4"}})
        mock_from_env.return_value.containers.get.return_value = container

        assert manager.get_container_hostname("ingest-manager_centos-systemd_1") == "a1b2c3d4"
        mock_from_env.return_value.containers.get.assert_called_once_with(
            "ingest-manager_centos-systemd_1"
        )

    @patch("e2e_testing.services.docker.from_env")
    def test_unknown_container(self, mock_from_env, manager):
        mock_from_env.return_value.containers.get.side_effect = NotFound("gone")

        with pytest.raises(ServiceError, match="Container not found"):
            manager.get_container_hostname("missing")

    @patch("e2e_testing.services.docker.from_env")
    def test_docker_unavailable(self, mock_from_env, manager):
        mock_from_env.side_effect = DockerException("no daemon")

        with pytest.raises(ServiceError):
            manager.get_container_hostname("any")
