import re
from dataclasses import dataclass
from typing import Optional, Sequence

import pulumi

from util.errors import ConfigurationError

CONFIG_NAMESPACE = "botpress"

STORAGE_MODES = ("disk", "database")
FIREWALL_MODES = ("native", "api")

_SIZE_RE = re.compile(r"^[1-9][0-9]*(Mi|Gi|Ti)$")


def require(cfg: pulumi.Config, key: str) -> str:
    val = cfg.get(key)
    if val is None:
        raise RuntimeError(f"Missing required config: {cfg.name}:{key}")
    return val


def choice(cfg: pulumi.Config, key: str, choices: Sequence[str], default: str) -> str:
    val = cfg.get(key) or default
    if val not in choices:
        raise ConfigurationError(
            f"Invalid config {cfg.name}:{key}={val!r}; expected one of {', '.join(choices)}"
        )
    return val


def storage_size(cfg: pulumi.Config, key: str, default: str) -> str:
    val = cfg.get(key) or default
    if not _SIZE_RE.match(val):
        raise ConfigurationError(f"Invalid storage size {cfg.name}:{key}={val!r}; expected e.g. 5Gi")
    return val


def bare_host(cfg: pulumi.Config, key: str) -> Optional[str]:
    val = cfg.get(key)
    if val and "/" in val:
        raise ConfigurationError(f"Invalid config {cfg.name}:{key}={val!r}; expected a host name without scheme or path")
    return val or None


def positive_int(cfg: pulumi.Config, key: str, default: int) -> int:
    val = cfg.get_int(key)
    if val is None:
        return default
    if val < 1:
        raise ConfigurationError(f"Invalid config {cfg.name}:{key}={val}; must be >= 1")
    return val


@dataclass(frozen=True)
class Settings:
    botpress_server_version: str
    cluster_name: str = "botpress-cluster"
    cluster_region: str = "sfo2"
    doks_version: Optional[str] = None
    node_size: str = "s-1vcpu-2gb"
    node_count: int = 2
    node_pool_tag: str = "botpress"
    vpc_ip_range: Optional[str] = None
    ingress_chart_version: str = "4.7.0"
    custom_domain: Optional[str] = None
    bpfs_storage: str = "disk"
    database_size: str = "db-s-1vcpu-1gb"
    database_version: str = "16"
    database_node_count: int = 1
    database_pool_size: int = 20
    database_firewall: str = "native"
    lang_server_storage: str = "5Gi"
    lang_server_replicas: int = 1
    main_server_storage: str = "1Gi"
    main_server_replicas: int = 1

    @property
    def uses_database(self) -> bool:
        return self.bpfs_storage == "database"


def load_settings(cfg: Optional[pulumi.Config] = None) -> Settings:
    cfg = cfg or pulumi.Config(CONFIG_NAMESPACE)
    defaults = Settings(botpress_server_version="")
    return Settings(
        botpress_server_version=require(cfg, "botpressServerVersion"),
        cluster_name=cfg.get("clusterName") or defaults.cluster_name,
        cluster_region=cfg.get("clusterRegion") or defaults.cluster_region,
        doks_version=cfg.get("doksVersion"),
        node_size=cfg.get("nodeSize") or defaults.node_size,
        node_count=positive_int(cfg, "nodeCount", defaults.node_count),
        vpc_ip_range=cfg.get("vpcIpRange"),
        ingress_chart_version=cfg.get("ingressChartVersion") or defaults.ingress_chart_version,
        custom_domain=bare_host(cfg, "customDomain"),
        bpfs_storage=choice(cfg, "bpfsStorage", STORAGE_MODES, defaults.bpfs_storage),
        database_size=cfg.get("databaseSize") or defaults.database_size,
        database_version=cfg.get("databaseVersion") or defaults.database_version,
        database_node_count=positive_int(cfg, "databaseNodeCount", defaults.database_node_count),
        database_pool_size=positive_int(cfg, "databasePoolSize", defaults.database_pool_size),
        database_firewall=choice(cfg, "databaseFirewall", FIREWALL_MODES, defaults.database_firewall),
        lang_server_storage=storage_size(cfg, "langServerStorage", defaults.lang_server_storage),
        lang_server_replicas=positive_int(cfg, "langServerReplicas", defaults.lang_server_replicas),
        main_server_storage=storage_size(cfg, "mainServerStorage", defaults.main_server_storage),
        main_server_replicas=positive_int(cfg, "mainServerReplicas", defaults.main_server_replicas),
    )
