"""
Rocketship stack - the droplet, its network resources and the service activation chain.

build_stack() declares, in order:

1. SSH key and domain lookups
2. the droplet, with the SSH key authorized
3. a Let's Encrypt certificate for the public hostname
4. a load balancer in front of the droplet (HTTP and HTTPS)
5. an A record pointing the hostname at the load balancer
6. settle → copy the systemd unit → which docker → ufw allow → systemctl enable → systemctl start
"""

import logging

from .chain import chain_commands, copy_file, settle
from .connection import ConnectionDescriptor, open_connection
from .deferred import to_int
from .graph import Graph, Node
from .resources import (
    Certificate,
    DnsRecord,
    DomainLookup,
    Droplet,
    ForwardingRule,
    LoadBalancer,
    SshKeyLookup,
)
from .settings import RocketshipSettings, get_settings

logger = logging.getLogger(__name__)


def lookup_ssh_key(graph: Graph, settings: RocketshipSettings) -> Node:
    logger.info("Fetching SSH Key.")
    return graph.declare("ssh-key", SshKeyLookup(name=settings.ssh_key_name))


def lookup_domain(graph: Graph, settings: RocketshipSettings) -> Node:
    return graph.declare("domain", DomainLookup(name=settings.domain))


def create_droplet(graph: Graph, settings: RocketshipSettings, ssh_key: Node) -> Node:
    logger.info("Creating Droplet.")
    return graph.declare(
        settings.droplet_name,
        Droplet(
            image=settings.droplet_image,
            region=settings.region,
            size=settings.droplet_size,
            ssh_keys=[ssh_key["id"].map(str)],
        ),
    )


def create_certificate(graph: Graph, settings: RocketshipSettings) -> Node:
    return graph.declare("cert", Certificate(domains=[settings.fqdn], type="lets_encrypt"))


def create_load_balancer(
    graph: Graph, settings: RocketshipSettings, droplet: Node, cert: Node
) -> Node:
    """Put a load balancer in front of ``droplet``, terminating TLS with ``cert``.

    The droplet id comes back from the provider as a string; it is converted
    to an integer before the load balancer is created, and a non-numeric id
    fails the load balancer without it being attempted.
    """
    return graph.declare(
        settings.load_balancer_name,
        LoadBalancer(
            name=settings.load_balancer_name,
            region=settings.region,
            redirect_http_to_https=True,
            disable_lets_encrypt_dns_records=True,
            forwarding_rules=[
                ForwardingRule(
                    entry_port=80,
                    entry_protocol="http",
                    target_port=80,
                    target_protocol="http",
                ),
                ForwardingRule(
                    certificate_name=cert["name"],
                    entry_port=443,
                    entry_protocol="https",
                    target_port=80,
                    target_protocol="http",
                ),
            ],
            droplet_ids=[droplet["id"].map(to_int)],
        ),
        depends_on=[droplet, cert],
    )


def create_dns_record(
    graph: Graph, settings: RocketshipSettings, domain: Node, lb: Node
) -> Node:
    return graph.declare(
        f"{settings.subdomain}-dns",
        DnsRecord(domain=domain["id"], name=settings.subdomain, type="A", value=lb["ip"]),
        depends_on=[lb],
    )


def copy_systemd_manifest(
    graph: Graph,
    settings: RocketshipSettings,
    connection: ConnectionDescriptor,
    droplet: Node,
) -> Node:
    """Wait for the droplet to accept connections, then upload the unit file."""
    logger.info("Copying Service file to droplet.")
    settled = settle(
        graph,
        droplet,
        connection,
        mode=settings.settle_mode,
        seconds=settings.settle_seconds,
        attempts=settings.probe_attempts,
        base_delay=settings.probe_base_delay,
        max_delay=settings.probe_max_delay,
    )
    return copy_file(
        graph,
        connection,
        settings.service_file,
        settings.remote_service_path,
        settled,
        name="copy-systemd-file",
    )


def activation_commands(settings: RocketshipSettings) -> list[tuple[str, str]]:
    """The activation steps, in the only order systemd may see them."""
    return [
        ("where-is-docker", "which docker"),
        ("open-firewall", f"ufw allow {settings.firewall_port}"),
        ("enable-systemd-manifest", f"systemctl enable {settings.service_name}"),
        ("start-systemd-manifest", f"systemctl start {settings.service_name}"),
    ]


def register_systemd_manifest(
    graph: Graph,
    settings: RocketshipSettings,
    connection: ConnectionDescriptor,
    copied: Node,
) -> list[Node]:
    return chain_commands(graph, activation_commands(settings), connection, copied)


def build_stack(settings: RocketshipSettings | None = None) -> Graph:
    """Declare the whole deployment and return it as a graph.

    The returned graph's ``exports`` hold ``address``, ``lb-address``, ``url``
    and the stdout/stderr of every command step.

    Raises:
        CredentialUnavailable: If the private key cannot be read
    """
    settings = settings or get_settings()
    graph = Graph(settings.project_name)

    ssh_key = lookup_ssh_key(graph, settings)
    domain = lookup_domain(graph, settings)

    droplet = create_droplet(graph, settings, ssh_key)
    cert = create_certificate(graph, settings)
    lb = create_load_balancer(graph, settings, droplet, cert)

    graph.export("address", droplet["ipv4_address"])
    graph.export("lb-address", lb["ip"])
    graph.export("url", settings.url)

    create_dns_record(graph, settings, domain, lb)

    connection = open_connection(droplet, settings.private_key_path, settings.ssh_user)
    copied = copy_systemd_manifest(graph, settings, connection, droplet)
    register_systemd_manifest(graph, settings, connection, copied)

    logger.info(f"Declared {len(graph)} resources and {len(graph.exports)} exports")
    return graph
