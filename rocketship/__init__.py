"""
Rocketship - Provision a droplet and bring its service up, in order.

Declare the deployment as a graph of resources whose inputs may be deferred
values (an address or id the cloud has not assigned yet), chain remote shell
steps strictly one after another, then hand the graph to Pulumi to execute,
or rehearse it in-process first.
"""

from .core import RocketshipCore
from .deferred import Deferred, combine, to_int
from .engine import Engine, RunResult
from .graph import Graph, Node
from .settings import RocketshipSettings, get_settings, reload_settings
from .stack import build_stack

__version__ = "0.1.0"
__all__ = [
    "Deferred",
    "Engine",
    "Graph",
    "Node",
    "RocketshipCore",
    "RocketshipSettings",
    "RunResult",
    "build_stack",
    "combine",
    "get_settings",
    "reload_settings",
    "to_int",
]
