"""DigitalOcean resources - droplet, certificate, load balancer, DNS and lookups."""

from typing import Any, Literal

import pulumi
import pulumi_digitalocean as digitalocean
from pydantic import BaseModel, ConfigDict, Field

from ..deferred import Input
from .base import Descriptor


class SshKeyLookup(Descriptor):
    """Look up an SSH key already registered with the account.

    Outputs ``id`` (numeric), ``name``, ``fingerprint``.
    """

    kind = "digitalocean:index/getSshKey:getSshKey"
    outputs = ("id", "name", "fingerprint")
    lookup = True

    name: str

    def to_pulumi(self, name: str, opts: pulumi.ResourceOptions | None = None) -> Any:
        return digitalocean.get_ssh_key_output(name=self.name)


class DomainLookup(Descriptor):
    """Look up a domain managed by DigitalOcean DNS."""

    kind = "digitalocean:index/getDomain:getDomain"
    outputs = ("id", "name")
    lookup = True

    name: str

    def to_pulumi(self, name: str, opts: pulumi.ResourceOptions | None = None) -> Any:
        return digitalocean.get_domain_output(name=self.name)


class Droplet(Descriptor):
    """A virtual machine.

    Attributes:
        image: Image slug, e.g. "docker-20-04" (Docker preinstalled)
        region: Region slug
        size: Size slug
        ssh_keys: Key ids or fingerprints allowed to log in as root
    """

    kind = "digitalocean:index/droplet:Droplet"
    outputs = ("id", "ipv4_address", "name")

    image: str
    region: str
    size: str
    ssh_keys: list[Input[str]] = Field(default_factory=list)

    def to_pulumi(self, name: str, opts: pulumi.ResourceOptions | None = None) -> Any:
        return digitalocean.Droplet(
            name,
            image=self.image,
            region=self.region,
            size=self.size,
            ssh_keys=self.ssh_keys,
            opts=opts,
        )


class Certificate(Descriptor):
    """A TLS certificate, issued by Let's Encrypt unless told otherwise."""

    kind = "digitalocean:index/certificate:Certificate"
    outputs = ("id", "name")

    domains: list[str]
    type: Literal["lets_encrypt", "custom"] = "lets_encrypt"

    def to_pulumi(self, name: str, opts: pulumi.ResourceOptions | None = None) -> Any:
        return digitalocean.Certificate(
            name,
            domains=self.domains,
            type=self.type,
            opts=opts,
        )


class ForwardingRule(BaseModel):
    """One entry/target port pair of a load balancer."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    entry_port: int
    entry_protocol: str
    target_port: int
    target_protocol: str
    certificate_name: Input[str] | None = None

    def to_pulumi_args(self) -> digitalocean.LoadBalancerForwardingRuleArgs:
        return digitalocean.LoadBalancerForwardingRuleArgs(
            entry_port=self.entry_port,
            entry_protocol=self.entry_protocol,
            target_port=self.target_port,
            target_protocol=self.target_protocol,
            certificate_name=self.certificate_name,
        )


class LoadBalancer(Descriptor):
    """A regional load balancer in front of one or more droplets.

    ``droplet_ids`` must be integers; droplet ids arrive from the provider as
    strings, so callers attach them with ``droplet["id"].map(to_int)``.
    """

    kind = "digitalocean:index/loadBalancer:LoadBalancer"
    outputs = ("id", "ip")

    name: str
    region: str
    forwarding_rules: list[ForwardingRule]
    droplet_ids: list[Input[int]] = Field(default_factory=list)
    redirect_http_to_https: bool = False
    disable_lets_encrypt_dns_records: bool = False

    def to_pulumi(self, name: str, opts: pulumi.ResourceOptions | None = None) -> Any:
        return digitalocean.LoadBalancer(
            name,
            name=self.name,
            region=self.region,
            redirect_http_to_https=self.redirect_http_to_https,
            disable_lets_encrypt_dns_records=self.disable_lets_encrypt_dns_records,
            forwarding_rules=[rule.to_pulumi_args() for rule in self.forwarding_rules],
            droplet_ids=self.droplet_ids,
            opts=opts,
        )


class DnsRecord(Descriptor):
    """A record inside a managed domain."""

    kind = "digitalocean:index/dnsRecord:DnsRecord"
    outputs = ("id", "fqdn")

    domain: Input[str]
    name: str
    type: str = "A"
    value: Input[str]

    def to_pulumi(self, name: str, opts: pulumi.ResourceOptions | None = None) -> Any:
        return digitalocean.DnsRecord(
            name,
            domain=self.domain,
            name=self.name,
            type=self.type,
            value=self.value,
            opts=opts,
        )
