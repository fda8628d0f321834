# compute.py
from __future__ import annotations
from typing import Optional

import pulumi
import pulumi_kubernetes as k8s
import pulumi_digitalocean as do

from util.config import Settings
from util.naming import with_suffix

# ---- Version / pool helpers -------------------------------------------------

def resolve_doks_version(settings: Settings) -> str:
    if settings.doks_version:
        return settings.doks_version
    # Pick a valid DOKS version slug dynamically (avoid guessing).
    version = do.get_kubernetes_versions().latest_version
    pulumi.log.info(f"doksVersion not set; using latest DOKS version: {version}")
    return version

def default_pool_args(settings: Settings) -> do.KubernetesClusterNodePoolArgs:
    # DO block storage only supports ReadWriteOnce, so every PVC binds to one
    # node; size the pool accordingly.
    return do.KubernetesClusterNodePoolArgs(
        name="default-pool",
        size=settings.node_size,
        node_count=settings.node_count,
        tags=[settings.node_pool_tag],
    )

CLUSTER_CREATE_TIMEOUT = "1h"

def cluster_options() -> pulumi.ResourceOptions:
    # DOKS provisioning regularly outlives the provider default.
    return pulumi.ResourceOptions(custom_timeouts=pulumi.CustomTimeouts(create=CLUSTER_CREATE_TIMEOUT))

# ---- Main entry point -------------------------------------------------------

def ensure_cluster(settings: Settings, *, vpc_id: Optional[pulumi.Input[str]] = None) -> tuple[do.KubernetesCluster, k8s.Provider]:
    version = resolve_doks_version(settings)

    cluster = do.KubernetesCluster(
        "botpressCluster",
        name=settings.cluster_name,
        region=settings.cluster_region,
        version=version,
        vpc_uuid=vpc_id,
        node_pool=default_pool_args(settings),
        tags=[settings.node_pool_tag, with_suffix(settings.cluster_name, "doks")],
        opts=cluster_options(),
    )

    kubeconfig = pulumi.Output.secret(cluster.kube_configs[0].raw_config)
    provider = k8s.Provider(
        "doK8s",
        kubeconfig=kubeconfig,
        enable_server_side_apply=True,
        opts=pulumi.ResourceOptions(depends_on=[cluster]),
    )
    return cluster, provider
