"""
Rocketship Core - declare the deployment once, then plan, rehearse or apply it.

Apply Pipeline: Build graph → Lower to Pulumi → pulumi up
Preview Pipeline: Build graph → Lower to Pulumi → pulumi preview
Destroy Pipeline: pulumi destroy
Rehearse Pipeline: Build graph → Run reference engine with rehearsal collaborators
"""

import logging
from typing import Any

from .engine import Engine, RunResult
from .errors import GraphError
from .graph import Graph
from .pulumi_compiler import PulumiCompiler
from .rehearsal import RehearsalProvider, RehearsalTransport, skip_sleep
from .settings import RocketshipSettings, get_settings
from .stack import build_stack

logger = logging.getLogger(__name__)


class RocketshipCore:
    """Main coordinator for the Rocketship pipeline."""

    def __init__(self, settings: RocketshipSettings | None = None):
        """
        Initialize RocketshipCore.

        Args:
            settings: Settings to use (defaults to the global settings)
        """
        self.settings = settings or get_settings()
        self.pulumi_compiler = PulumiCompiler(self.settings)

        logger.info("RocketshipCore initialized")

    def plan(self) -> Graph:
        """Declare the deployment without provisioning anything.

        The returned graph holds the private key; callers release it with
        ``graph.release_credentials()`` when they are done with the graph.
        """
        graph = build_stack(self.settings)
        try:
            graph.validate()
        except GraphError:
            graph.release_credentials()
            raise
        return graph

    async def apply(self, dry_run: bool = False) -> dict[str, Any]:
        """
        Full pipeline: build → deploy with Pulumi.

        Args:
            dry_run: If True, only preview without executing

        Returns:
            Dict with execution results
        """
        graph = self.plan()
        logger.info(f"Starting Rocketship pipeline for stack: {self.settings.stack_name}")

        try:
            if dry_run:
                logger.info("Dry run - running preview only")
                result = await self.pulumi_compiler.preview(graph)
                return {"dry_run": True, "resources": len(graph), "preview": result}

            result = await self.pulumi_compiler.apply(graph)
        finally:
            graph.release_credentials()

        logger.info("Rocketship pipeline complete")
        return result

    async def preview(self) -> dict[str, Any]:
        return await self.apply(dry_run=True)

    async def destroy(self) -> dict[str, Any]:
        return await self.pulumi_compiler.destroy()

    async def rehearse(self) -> RunResult:
        """Run the graph through the reference engine without touching the network."""
        graph = self.plan()
        engine = Engine(RehearsalProvider(), RehearsalTransport(), sleep=skip_sleep)
        try:
            return await engine.run(graph)
        finally:
            graph.release_credentials()
