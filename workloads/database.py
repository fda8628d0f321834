from dataclasses import dataclass
from typing import Optional

import pulumi
import pulumi_digitalocean as do
import pulumi_digitalocean.config as do_config
from pulumi_random import RandomUuid

from util.errors import ConfigurationError
from util.naming import dns_label
from workloads.trust_grant import DatabaseTrustGrant, DatabaseTrustGrantArgs

DB_NAME = "botpress"


@dataclass
class DatabaseArgs:
    k8s_cluster_id: pulumi.Input[str]
    region: str
    size: str = "db-s-1vcpu-1gb"
    version: str = "16"
    node_count: int = 1
    pool_size: int = 20
    firewall_mode: str = "native"
    vpc_id: Optional[pulumi.Input[str]] = None
    api_token: Optional[pulumi.Input[str]] = None
    api_endpoint: Optional[pulumi.Input[str]] = None


class ManagedDatabase(pulumi.ComponentResource):
    """Managed Postgres for Botpress: cluster, database, pool and trust grant."""

    def __init__(self, name: str, args: DatabaseArgs, opts: Optional[pulumi.ResourceOptions] = None):
        super().__init__("botpress:database:ManagedDatabase", name, None, opts)
        self.args = args
        child = pulumi.ResourceOptions(parent=self)

        self.cluster = do.DatabaseCluster(
            f"{name}-cluster",
            name=dns_label(f"{name}-cluster"),
            engine="pg",
            version=args.version,
            size=args.size,
            region=args.region,
            node_count=args.node_count,
            private_network_uuid=args.vpc_id,
            opts=child,
        )
        self.db = do.DatabaseDb(
            f"{name}-db",
            cluster_id=self.cluster.id,
            name=DB_NAME,
            opts=child,
        )
        self.pool = do.DatabaseConnectionPool(
            f"{name}-pool",
            cluster_id=self.cluster.id,
            name=f"{DB_NAME}-pool",
            mode="transaction",
            size=args.pool_size,
            db_name=self.db.name,
            user=self.cluster.user,
            opts=child,
        )
        self.trust_grant = self._create_trust_grant(name, args, child)
        self.ca_certificate: pulumi.Output[str] = do.get_database_ca_output(
            cluster_id=self.cluster.id,
            opts=pulumi.InvokeOptions(parent=self),
        ).certificate

        self.register_outputs({
            "clusterId": self.cluster.id,
            "poolPrivateUri": self.private_uri,
        })

    @property
    def private_uri(self) -> pulumi.Output[str]:
        return self.pool.private_uri

    def _create_trust_grant(self, name: str, args: DatabaseArgs, opts: pulumi.ResourceOptions):
        if args.firewall_mode == "native":
            return do.DatabaseFirewall(
                f"{name}-trust",
                cluster_id=self.cluster.id,
                rules=[do.DatabaseFirewallRuleArgs(type="k8s", value=args.k8s_cluster_id)],
                opts=opts,
            )

        token = args.api_token or do_config.token
        if not token:
            raise ConfigurationError(
                "databaseFirewall=api needs a DigitalOcean token (digitalocean:token or DIGITALOCEAN_TOKEN)"
            )
        pulumi.log.info("Managing the database trust grant through the DO firewall API", self)
        rule_id = RandomUuid(f"{name}-trust-id", opts=opts)
        return DatabaseTrustGrant(
            f"{name}-trust",
            DatabaseTrustGrantArgs(
                db_cluster_id=self.cluster.id,
                k8s_cluster_id=args.k8s_cluster_id,
                rule_uuid=rule_id.result,
                api_token=token,
                api_endpoint=args.api_endpoint or do_config.api_endpoint,
            ),
            opts=pulumi.ResourceOptions(parent=self, depends_on=[self.cluster]),
        )
