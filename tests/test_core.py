"""Tests for the RocketshipCore pipelines."""

from unittest.mock import AsyncMock, patch

import pytest

from rocketship.core import RocketshipCore
from rocketship.stack import build_stack


@pytest.fixture
def core(settings, monkeypatch):
    monkeypatch.setenv("PULUMI_CONFIG_PASSPHRASE", "test-passphrase")
    return RocketshipCore(settings)


@pytest.fixture
def built_graphs():
    """Record every graph the core builds so tests can inspect it afterwards."""
    graphs = []

    def build(settings):
        graph = build_stack(settings)
        graphs.append(graph)
        return graph

    with patch("rocketship.core.build_stack", side_effect=build):
        yield graphs


def private_key_of(graph):
    return graph["where-is-docker"].descriptor.connection.private_key


class TestRocketshipCore:
    """Plan, rehearse and apply pipelines."""

    def test_plan(self, core):
        graph = core.plan()
        assert len(graph) == 12
        assert "url" in graph.exports

    @pytest.mark.asyncio
    async def test_rehearse(self, core):
        result = await core.rehearse()

        assert result.success
        assert result.executed[-1] == "start-systemd-manifest"
        assert result.outputs["url"] == "https://pulumi.example.com"

    @pytest.mark.asyncio
    async def test_dry_run_only_previews(self, core):
        preview = {"success": True, "changes": {"create": 12}}
        with patch.object(core.pulumi_compiler, "preview", AsyncMock(return_value=preview)), \
             patch.object(core.pulumi_compiler, "apply", AsyncMock()) as mock_apply:
            result = await core.apply(dry_run=True)

        assert result == {"dry_run": True, "resources": 12, "preview": preview}
        mock_apply.assert_not_called()

    @pytest.mark.asyncio
    async def test_apply(self, core):
        applied = {"success": True, "summary": None, "outputs": {"url": "https://pulumi.example.com"}}
        with patch.object(core.pulumi_compiler, "apply", AsyncMock(return_value=applied)) as mock_apply:
            result = await core.apply()

        assert result is applied
        graph = mock_apply.call_args.args[0]
        assert len(graph) == 12


class TestCredentialLifetime:
    """The private key is zeroed once a pipeline is done with the graph."""

    @pytest.mark.asyncio
    async def test_rehearse_releases_key(self, core, built_graphs):
        result = await core.rehearse()

        assert result.success
        assert private_key_of(built_graphs[0]).released

    @pytest.mark.asyncio
    async def test_apply_releases_key(self, core, built_graphs):
        applied = {"success": True, "summary": None, "outputs": {}}
        with patch.object(core.pulumi_compiler, "apply", AsyncMock(return_value=applied)):
            await core.apply()

        assert private_key_of(built_graphs[0]).released

    @pytest.mark.asyncio
    async def test_preview_releases_key(self, core, built_graphs):
        preview = {"success": True, "changes": {}}
        with patch.object(core.pulumi_compiler, "preview", AsyncMock(return_value=preview)):
            await core.preview()

        assert private_key_of(built_graphs[0]).released

    @pytest.mark.asyncio
    async def test_key_released_when_deploy_raises(self, core, built_graphs):
        with patch.object(core.pulumi_compiler, "apply", AsyncMock(side_effect=RuntimeError("boom"))):
            with pytest.raises(RuntimeError):
                await core.apply()

        assert private_key_of(built_graphs[0]).released

    def test_plan_keeps_key_for_caller(self, core):
        graph = core.plan()
        key = private_key_of(graph)

        assert not key.released
        graph.release_credentials()
        assert key.released
