"""Tests for lowering graphs to Pulumi and driving the Automation API."""

import os
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from rocketship.deferred import to_int
from rocketship.pulumi_compiler import Lowering, PulumiCompiler
from rocketship.stack import build_stack


def distinct(mock_type):
    """Make every call of a mocked resource class return a new mock."""
    mock_type.side_effect = lambda name, **kwargs: MagicMock(name=name)
    return mock_type


@pytest.fixture
def pulumi_mocks():
    with patch("rocketship.resources.digitalocean.digitalocean") as mock_do, \
         patch("rocketship.resources.command.remote") as mock_remote, \
         patch("rocketship.resources.command.local") as mock_local, \
         patch("rocketship.connection.remote") as mock_conn, \
         patch("rocketship.connection.pulumi.Output.secret") as mock_secret, \
         patch("rocketship.pulumi_compiler.pulumi.export") as mock_export, \
         patch("rocketship.pulumi_compiler.pulumi.ResourceOptions", side_effect=lambda **kw: SimpleNamespace(**kw)):
        distinct(mock_remote.Command)
        yield {
            "do": mock_do,
            "remote": mock_remote,
            "local": mock_local,
            "conn": mock_conn,
            "secret": mock_secret,
            "export": mock_export,
        }


@pytest.fixture
def compiler(settings, monkeypatch):
    monkeypatch.setenv("PULUMI_CONFIG_PASSPHRASE", "test-passphrase")
    return PulumiCompiler(settings)


class TestLowering:
    """Translating the declared stack into Pulumi resources."""

    def test_program_creates_every_resource(self, compiler, settings, pulumi_mocks):
        graph = build_stack(settings)
        compiler.create_program(graph)()

        mock_do = pulumi_mocks["do"]
        mock_do.get_ssh_key_output.assert_called_once_with(name="deploy")
        mock_do.get_domain_output.assert_called_once_with(name="example.com")
        assert mock_do.Droplet.call_args.args == ("rust-web",)
        assert mock_do.Certificate.call_args.kwargs["domains"] == ["pulumi.example.com"]
        assert mock_do.LoadBalancer.call_args.args == ("rocket-lb",)
        assert mock_do.DnsRecord.call_args.args == ("pulumi-dns",)
        assert pulumi_mocks["local"].Command.call_args.kwargs["create"] == "sleep 30"
        assert pulumi_mocks["remote"].CopyFile.call_args.kwargs["remote_path"] == "/etc/systemd/system/rocket.service"

    def test_droplet_id_converted_to_integer(self, compiler, settings, pulumi_mocks):
        graph = build_stack(settings)
        compiler.create_program(graph)()

        mock_do = pulumi_mocks["do"]
        droplet = mock_do.Droplet.return_value
        droplet.id.apply.assert_called_once_with(to_int)
        assert mock_do.LoadBalancer.call_args.kwargs["droplet_ids"] == [droplet.id.apply.return_value]

    def test_depends_on_wiring(self, compiler, settings, pulumi_mocks):
        graph = build_stack(settings)
        compiler.create_program(graph)()

        mock_do = pulumi_mocks["do"]
        lb_opts = mock_do.LoadBalancer.call_args.kwargs["opts"]
        assert lb_opts.depends_on == [mock_do.Droplet.return_value, mock_do.Certificate.return_value]

        dns_kwargs = mock_do.DnsRecord.call_args.kwargs
        assert dns_kwargs["opts"].depends_on == [mock_do.LoadBalancer.return_value]
        assert dns_kwargs["value"] is mock_do.LoadBalancer.return_value.ip

        droplet_opts = mock_do.Droplet.call_args.kwargs["opts"]
        assert droplet_opts is None

    def test_remote_commands_chained(self, compiler, settings, pulumi_mocks):
        graph = build_stack(settings)
        compiler.create_program(graph)()

        calls = pulumi_mocks["remote"].Command.call_args_list
        assert [c.args[0] for c in calls] == [
            "where-is-docker",
            "open-firewall",
            "enable-systemd-manifest",
            "start-systemd-manifest",
        ]
        assert calls[0].kwargs["opts"].depends_on == [pulumi_mocks["remote"].CopyFile.return_value]
        created = [c.kwargs["opts"].depends_on[0] for c in calls[1:]]
        assert [mock._mock_name for mock in created] == [
            "where-is-docker",
            "open-firewall",
            "enable-systemd-manifest",
        ]

    def test_private_key_passed_as_secret(self, compiler, settings, pulumi_mocks):
        graph = build_stack(settings)
        compiler.create_program(graph)()

        secret = pulumi_mocks["secret"]
        assert secret.called
        assert "OPENSSH PRIVATE KEY" in secret.call_args.args[0]
        host = pulumi_mocks["conn"].ConnectionArgs.call_args.kwargs["host"]
        assert host is pulumi_mocks["do"].Droplet.return_value.ipv4_address

    def test_exports_registered(self, compiler, settings, pulumi_mocks):
        graph = build_stack(settings)
        compiler.create_program(graph)()

        exported = {c.args[0]: c.args[1] for c in pulumi_mocks["export"].call_args_list}
        assert list(exported) == list(graph.exports)
        assert exported["url"] == "https://pulumi.example.com"
        assert exported["address"] is pulumi_mocks["do"].Droplet.return_value.ipv4_address
        assert exported["lb-address"] is pulumi_mocks["do"].LoadBalancer.return_value.ip

    def test_lowering_memoizes_outputs(self, settings, pulumi_mocks):
        graph = build_stack(settings)
        lowering = Lowering()
        for node in list(graph)[:3]:
            lowering.declare(node)

        address = graph["rust-web"]["ipv4_address"]
        assert lowering.lower(address) is lowering.lower(address)
        assert set(lowering.resources) == {"ssh-key", "domain", "rust-web"}


class TestPulumiCompiler:
    """Driving stacks through the Automation API."""

    def test_passphrase_not_overridden(self, compiler):
        assert os.environ["PULUMI_CONFIG_PASSPHRASE"] == "test-passphrase"

    @pytest.mark.asyncio
    async def test_apply_success(self, compiler, settings):
        up_result = MagicMock()
        up_result.summary.result = "succeeded"
        up_result.summary.resource_changes = {"create": 12}
        up_result.outputs = {"url": MagicMock(value="https://pulumi.example.com")}

        with patch("rocketship.pulumi_compiler.auto") as mock_auto:
            mock_auto.create_or_select_stack.return_value.up.return_value = up_result
            result = await compiler.apply(build_stack(settings))

        assert result["success"] is True
        assert result["summary"]["resource_changes"] == {"create": 12}
        assert result["outputs"] == {"url": "https://pulumi.example.com"}
        kwargs = mock_auto.create_or_select_stack.call_args.kwargs
        assert kwargs["stack_name"] == "dev"
        assert kwargs["project_name"] == "rocketship"
        assert callable(kwargs["program"])

    @pytest.mark.asyncio
    async def test_apply_failure(self, compiler, settings):
        with patch("rocketship.pulumi_compiler.auto") as mock_auto:
            mock_auto.create_or_select_stack.return_value.up.side_effect = Exception("update failed")
            result = await compiler.apply(build_stack(settings))

        assert result["success"] is False
        assert "update failed" in result["error"]
        assert result["outputs"] == {}

    @pytest.mark.asyncio
    async def test_preview(self, compiler, settings):
        with patch("rocketship.pulumi_compiler.auto") as mock_auto:
            mock_auto.create_or_select_stack.return_value.preview.return_value.change_summary = {"create": 12}
            result = await compiler.preview(build_stack(settings))

        assert result == {"success": True, "changes": {"create": 12}}

    @pytest.mark.asyncio
    async def test_destroy(self, compiler):
        with patch("rocketship.pulumi_compiler.auto") as mock_auto:
            summary = mock_auto.create_or_select_stack.return_value.destroy.return_value.summary
            summary.result = "succeeded"
            summary.resource_changes = {"delete": 12}
            result = await compiler.destroy()

        assert result["success"] is True
        assert result["summary"] == {"result": "succeeded", "resource_changes": {"delete": 12}}

    @pytest.mark.asyncio
    async def test_state_dir_created(self, compiler, settings):
        with patch("rocketship.pulumi_compiler.auto"):
            await compiler.destroy()
        assert settings.pulumi_state_dir.is_dir()

    @pytest.mark.asyncio
    async def test_stack_selection_failure(self, compiler, settings):
        with patch("rocketship.pulumi_compiler.auto") as mock_auto:
            mock_auto.create_or_select_stack.side_effect = Exception("passphrase must be set")
            result = await compiler.apply(build_stack(settings))

        assert result["success"] is False
        assert result["error"].startswith("Could not open stack rocketship/dev")
        assert "passphrase must be set" in result["error"]

    def test_describe_changes(self):
        assert PulumiCompiler._describe({"create": 3, "delete": 1}) == "+3 ~0 -1"
        assert PulumiCompiler._describe(None) == "+0 ~0 -0"
