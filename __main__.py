"""Deploy the Botpress services onto a DigitalOcean Kubernetes cluster.

https://botpress.io/docs/advanced/hosting#running-multiple-containers
"""
import pulumi
import pulumi_kubernetes as k8s
from pulumi_kubernetes.meta.v1 import ObjectMetaArgs

from util.config import load_settings


# load the `botpress` config namespace
settings = load_settings()

from workloads.compute import ensure_cluster
from workloads.networking import ensure_domain_record, ensure_vpc
from workloads.system import SharedIngress

# Stand up the kube cluster
vpc = ensure_vpc(name=settings.cluster_name, region=settings.cluster_region, ip_range=settings.vpc_ip_range)
cluster, provider = ensure_cluster(settings, vpc_id=vpc.id if vpc else None)
pulumi.export("kubeconfig", pulumi.Output.secret(cluster.kube_configs[0].raw_config))

apps_namespace = k8s.core.v1.Namespace(
    "apps",
    metadata=ObjectMetaArgs(name="apps"),
    opts=pulumi.ResourceOptions(provider=provider),
)

# One ingress controller for every app service
ingress = SharedIngress(provider=provider, chart_version=settings.ingress_chart_version)

from workloads.app_service import AppServiceArgs
from workloads.database import DatabaseArgs
from workloads.lang_server import LangServer
from workloads.main_server import MainServer, MainServerArgs

lang_server = LangServer(
    AppServiceArgs(
        cluster_id=cluster.id,
        namespace=apps_namespace.metadata["name"],
        num_replicas=settings.lang_server_replicas,
        storage_size=settings.lang_server_storage,
        server_version=settings.botpress_server_version,
    ),
    ingress=ingress,
    opts=pulumi.ResourceOptions(provider=provider, parent=cluster),
)

database = None
if settings.uses_database:
    database = DatabaseArgs(
        k8s_cluster_id=cluster.id,
        region=settings.cluster_region,
        size=settings.database_size,
        version=settings.database_version,
        node_count=settings.database_node_count,
        pool_size=settings.database_pool_size,
        firewall_mode=settings.database_firewall,
        vpc_id=vpc.id if vpc else None,
    )

main_server = MainServer(
    MainServerArgs(
        cluster_id=cluster.id,
        namespace=apps_namespace.metadata["name"],
        num_replicas=settings.main_server_replicas,
        storage_size=settings.main_server_storage,
        server_version=settings.botpress_server_version,
        lang_server_endpoint=lang_server.get_service_endpoint(),
        bpfs_storage=settings.bpfs_storage,
        domain_name=settings.custom_domain,
        database=database,
    ),
    ingress=ingress,
    opts=pulumi.ResourceOptions(provider=provider, parent=cluster, depends_on=[lang_server]),
)

ingress_ip = ingress.address()
pulumi.export("ingressIp", ingress_ip)

ensure_domain_record(domain_name=settings.custom_domain, ip_address=ingress_ip)
