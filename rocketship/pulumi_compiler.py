"""
Pulumi Compiler - Lowers a deployment graph to Pulumi and drives it with the Automation API.

Deferred values become ``pulumi.Output`` values, explicit predecessors become
``ResourceOptions(depends_on=...)`` and the export table becomes stack outputs.
Pulumi's engine then does the actual sequencing and provisioning.
"""

import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pulumi
from pulumi import automation as auto
from pydantic import BaseModel

from .deferred import Deferred
from .errors import DeploymentError
from .graph import Graph, Node
from .settings import RocketshipSettings, get_settings

logger = logging.getLogger(__name__)


class Lowering:
    """Translates graph nodes and deferred values into Pulumi objects.

    Nodes must be declared in graph order, since each node's inputs and
    predecessors refer to Pulumi objects created for earlier nodes.
    """

    def __init__(self):
        self.resources: dict[str, Any] = {}
        self._outputs: dict[Deferred, Any] = {}

    def lower(self, value: Any) -> Any:
        """Replace every deferred value nested inside ``value`` with a Pulumi output."""
        if isinstance(value, Deferred):
            return self._lower_deferred(value)
        if isinstance(value, BaseModel):
            update = {
                field: self.lower(getattr(value, field))
                for field in type(value).model_fields
            }
            return value.model_copy(update=update)
        if isinstance(value, dict):
            return {key: self.lower(item) for key, item in value.items()}
        if isinstance(value, (list, tuple)):
            return type(value)(self.lower(item) for item in value)
        return value

    def _lower_deferred(self, deferred: Deferred) -> Any:
        if deferred in self._outputs:
            return self._outputs[deferred]

        if deferred.is_known:
            output = pulumi.Output.from_input(deferred.value)
        elif deferred.source is not None:
            owner, key = deferred.source
            output = getattr(self.resources[owner.name], key)
        else:
            parents = [self._lower_deferred(parent) for parent in deferred.parents]
            transform = deferred.transform
            if len(parents) == 1:
                output = parents[0].apply(transform)
            else:
                output = pulumi.Output.all(*parents).apply(lambda values: transform(*values))

        self._outputs[deferred] = output
        return output

    def declare(self, node: Node) -> Any:
        """Create the Pulumi resource for ``node``."""
        opts = None
        if node.predecessors:
            opts = pulumi.ResourceOptions(
                depends_on=[self.resources[p.name] for p in node.predecessors]
            )

        lowered = self.lower(node.descriptor)
        resource = lowered.to_pulumi(node.name, opts)
        self.resources[node.name] = resource
        return resource


class PulumiCompiler:
    """Runs deployment graphs as inline Pulumi programs on a local file backend.

    Args:
        settings: Settings to use (defaults to the global settings)
    """

    def __init__(self, settings: RocketshipSettings | None = None):
        self.settings = settings or get_settings()
        self.state_dir = Path(self.settings.pulumi_state_dir)

        # An explicit PULUMI_CONFIG_PASSPHRASE wins over settings
        if "PULUMI_CONFIG_PASSPHRASE" not in os.environ:
            os.environ["PULUMI_CONFIG_PASSPHRASE"] = self.settings.pulumi_config_passphrase
            logger.debug("Set PULUMI_CONFIG_PASSPHRASE from settings")

        logger.debug(f"Pulumi state kept in {self.state_dir}")

    def create_program(self, graph: Graph) -> Callable:
        """Wrap ``graph`` as an inline program: every node in declaration order, then every export."""

        def pulumi_program():
            graph.validate()
            logger.info(f"Lowering {len(graph)} resources")

            lowering = Lowering()
            for node in graph:
                try:
                    lowering.declare(node)
                    logger.debug(f"Lowered {node.kind} '{node.name}'")
                except Exception as e:
                    logger.error(f"Could not lower {node.name}: {e}")
                    raise

            for name, value in graph.exports.items():
                pulumi.export(name, lowering.lower(value))

        return pulumi_program

    def _select_stack(self, program: Callable) -> auto.Stack:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        project_settings = auto.ProjectSettings(
            name=self.settings.project_name,
            runtime="python",
            backend=auto.ProjectBackend(url=self.state_dir.resolve().as_uri()),
        )
        try:
            stack = auto.create_or_select_stack(
                stack_name=self.settings.stack_name,
                project_name=self.settings.project_name,
                program=program,
                opts=auto.LocalWorkspaceOptions(project_settings=project_settings),
            )
        except Exception as e:
            raise DeploymentError(
                f"Could not open stack {self.settings.project_name}/{self.settings.stack_name}: {e}"
            ) from e
        logger.info(f"Using stack: {self.settings.stack_name}")
        return stack

    @staticmethod
    def _describe(changes: dict[str, int] | None) -> str:
        changes = changes or {}
        return " ".join(
            f"{sign}{changes.get(op, 0)}"
            for sign, op in (("+", "create"), ("~", "update"), ("-", "delete"))
        )

    async def apply(self, graph: Graph) -> dict[str, Any]:
        """Run ``pulumi up`` for ``graph``.

        Failures are reported in the result rather than raised, so the CLI
        can print the message Pulumi gave.

        Returns:
            ``success``, ``summary`` (result and resource changes) and the
            stack ``outputs`` as plain values, or ``error`` on failure
        """
        logger.info(f"Deploying {len(graph)} resources to {self.settings.project_name}/{self.settings.stack_name}")
        try:
            stack = self._select_stack(self.create_program(graph))
            up_result = stack.up(on_output=logger.debug)
        except Exception as e:
            logger.error(f"Deployment of {self.settings.stack_name} failed: {e}")
            return {"success": False, "error": str(e), "summary": None, "outputs": {}}

        summary = up_result.summary
        logger.info(f"Deployment {summary.result}: {self._describe(summary.resource_changes)}")
        return {
            "success": True,
            "summary": {"result": summary.result, "resource_changes": summary.resource_changes},
            "outputs": {name: output.value for name, output in up_result.outputs.items()},
        }

    async def preview(self, graph: Graph) -> dict[str, Any]:
        """Run ``pulumi preview`` for ``graph`` and report the planned change counts."""
        logger.info(f"Previewing {len(graph)} resources in {self.settings.project_name}/{self.settings.stack_name}")
        try:
            stack = self._select_stack(self.create_program(graph))
            preview_result = stack.preview(on_output=logger.debug)
        except Exception as e:
            logger.error(f"Preview of {self.settings.stack_name} failed: {e}")
            return {"success": False, "error": str(e), "changes": {}}

        changes = dict(preview_result.change_summary)
        logger.info(f"Preview: {self._describe(changes)}")
        return {"success": True, "changes": changes}

    async def destroy(self) -> dict[str, Any]:
        """Run ``pulumi destroy``; the stack's recorded state drives it, so no graph is needed."""
        logger.info(f"Destroying {self.settings.project_name}/{self.settings.stack_name}")
        try:
            stack = self._select_stack(lambda: None)
            destroy_result = stack.destroy(on_output=logger.debug)
        except Exception as e:
            logger.error(f"Destroy of {self.settings.stack_name} failed: {e}")
            return {"success": False, "error": str(e), "summary": None}

        summary = destroy_result.summary
        changes = summary.resource_changes or {}
        logger.info(f"Destroy {summary.result}: {self._describe(changes)}")
        return {
            "success": True,
            "summary": {"result": summary.result, "resource_changes": changes},
        }
