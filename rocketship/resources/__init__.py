"""Rocketship resources - desired-state descriptors for everything a deployment creates."""

from .base import Descriptor
from .command import CopyFile, LocalCommand, RemoteCommand, Settle
from .digitalocean import (
    Certificate,
    DnsRecord,
    DomainLookup,
    Droplet,
    ForwardingRule,
    LoadBalancer,
    SshKeyLookup,
)

__all__ = [
    "Descriptor",
    "Certificate",
    "CopyFile",
    "DnsRecord",
    "DomainLookup",
    "Droplet",
    "ForwardingRule",
    "LoadBalancer",
    "LocalCommand",
    "RemoteCommand",
    "Settle",
    "SshKeyLookup",
]
