import json
from dataclasses import dataclass
from typing import Dict, List, NamedTuple, Optional

import pulumi
from pulumi_kubernetes import core, networking
from pulumi_kubernetes.core.v1 import (
    ConfigMapVolumeSourceArgs,
    ContainerArgs,
    ContainerPortArgs,
    EnvVarArgs,
    VolumeArgs,
    VolumeMountArgs,
)
from pulumi_kubernetes.meta.v1 import ObjectMetaArgs
from pulumi_kubernetes.networking.v1 import (
    HTTPIngressPathArgs,
    HTTPIngressRuleValueArgs,
    IngressBackendArgs,
    IngressRuleArgs,
    IngressServiceBackendArgs,
    IngressSpecArgs,
    ServiceBackendPortArgs,
)

from util.errors import ConfigurationError, NotInitializedError
from workloads.app_service import AppService, AppServiceArgs
from workloads.database import DatabaseArgs, ManagedDatabase
from workloads.system import SharedIngress

SERVER_PORT = 3000
POD_NAME = "botpress-server"
SERVICE_NAME = "botpress-server-service"

CA_CONFIG_MAP = "botpress-db-ca"
CA_VOLUME = "db-ca"
CA_MOUNT_PATH = "/botpress/certs"
CA_FILE = "ca-certificate.crt"

NGINX = "nginx.ingress.kubernetes.io"

ASSETS_SNIPPET = """
proxy_cache my_cache;
proxy_ignore_headers Cache-Control;
proxy_hide_header Cache-Control;
proxy_hide_header Pragma;
proxy_cache_valid any 30m;
proxy_set_header Cache-Control max-age=30;
add_header Cache-Control max-age=30;
"""

SOCKET_IO_SNIPPET = """
proxy_set_header Upgrade $http_upgrade;
proxy_set_header Connection "Upgrade";
"""


class IngressRoute(NamedTuple):
    name: str
    path: str
    path_type: str
    annotations: Dict[str, str]


# Most specific first.
ROUTES = (
    IngressRoute(
        "assets-ingress",
        "/.+/assets/.*",
        "ImplementationSpecific",
        {f"{NGINX}/use-regex": "true", f"{NGINX}/configuration-snippet": ASSETS_SNIPPET},
    ),
    IngressRoute(
        "socketio-ingress",
        "/socket.io/",
        "Prefix",
        {f"{NGINX}/configuration-snippet": SOCKET_IO_SNIPPET},
    ),
    IngressRoute("root-ingress", "/", "Exact", {}),
)


def with_forced_ssl(uri: Optional[str]) -> str:
    if not uri:
        raise ConfigurationError("Database connection pool has no private URI.")
    sep = "&" if "?" in uri else "?"
    return f"{uri}{sep}ssl=true"


def create_ingress_rules(app: AppService, port: int) -> List[networking.v1.Ingress]:
    """Route external traffic to the app's service.

    Safe to call repeatedly: returns the existing rules once created, and
    creates nothing while the deployment or service is missing.
    """
    if app.ingress_rules is not None:
        return app.ingress_rules

    try:
        deployment = app.get_deployment()
        service = app.get_service()
    except NotInitializedError:
        pulumi.log.info("Some resources are not yet ready; skipping ingress rules.", app.parent)
        return []

    app.ingress_rules = [
        networking.v1.Ingress(
            route.name,
            metadata=ObjectMetaArgs(
                namespace=app.args.namespace,
                labels=deployment.metadata["labels"],
                annotations=route.annotations,
            ),
            spec=IngressSpecArgs(
                ingress_class_name="nginx",
                rules=[IngressRuleArgs(
                    http=HTTPIngressRuleValueArgs(
                        paths=[
                            HTTPIngressPathArgs(
                                path=route.path,
                                path_type=route.path_type,
                                backend=IngressBackendArgs(
                                    service=IngressServiceBackendArgs(
                                        name=service.metadata["name"],
                                        port=ServiceBackendPortArgs(number=port),
                                    )
                                ),
                            ),
                        ],
                    )
                )],
            ),
            opts=app.opts(depends_on=[deployment, service]),
        )
        for route in ROUTES
    ]
    return app.ingress_rules


@dataclass
class MainServerArgs(AppServiceArgs):
    lang_server_endpoint: Optional[pulumi.Input[str]] = None
    bpfs_storage: str = "disk"
    domain_name: Optional[str] = None
    database: Optional[DatabaseArgs] = None


class MainServer(pulumi.ComponentResource):
    """The main Botpress server, with Duckling running in the same container."""

    def __init__(self, args: MainServerArgs, *, ingress: SharedIngress, opts: Optional[pulumi.ResourceOptions] = None):
        super().__init__("botpress:apps:MainServer", "main-server", None, opts)
        if args.lang_server_endpoint is None:
            raise ConfigurationError("MainServer needs the language server endpoint for its NLU sources.")
        self.args = args
        self.app = AppService("main-server", args, ingress=ingress, parent=self)

        self.database: Optional[ManagedDatabase] = None
        self.ca_config_map: Optional[core.v1.ConfigMap] = None
        self.environment: Dict[str, pulumi.Input[str]] = {}
        self.volume_mounts: List[VolumeMountArgs] = []

        pulumi.log.info(f"Botpress file storage: {args.bpfs_storage}", self)
        if args.bpfs_storage == "database":
            self._create_database()
        self._create_deployment()
        self.app.create_service(SERVICE_NAME, SERVER_PORT)
        self.ensure_ingress_rules()

        self.register_outputs({})

    @property
    def ingress_rules(self) -> List[networking.v1.Ingress]:
        return self.app.ingress_rules or []

    def ensure_ingress_rules(self) -> List[networking.v1.Ingress]:
        return create_ingress_rules(self.app, SERVER_PORT)

    def external_url(self) -> pulumi.Input[Optional[str]]:
        """Base URL Botpress advertises.

        `domain_name` is a bare host (config rejects a scheme), served over
        plain http by the ingress controller, so the URL is `http://<domain>`.
        Without a domain the controller address is used once DO reports it.
        """
        if self.args.domain_name:
            return f"http://{self.args.domain_name}"
        return self.app.ingress.address().apply(lambda addr: f"http://{addr}" if addr else None)

    def _create_database(self):
        if self.args.database is None:
            raise ConfigurationError("bpfsStorage=database but no database settings were given.")
        self.database = ManagedDatabase(
            "botpress-db",
            self.args.database,
            opts=pulumi.ResourceOptions(parent=self),
        )
        self.ca_config_map = core.v1.ConfigMap(
            CA_CONFIG_MAP,
            metadata=self.app.base_metadata(name=CA_CONFIG_MAP),
            data={CA_FILE: self.database.ca_certificate},
            opts=self.app.opts(),
        )

    def _build_environment(self) -> Dict[str, pulumi.Input[str]]:
        env: Dict[str, pulumi.Input[str]] = {
            "BP_MODULE_NLU_LANGUAGESOURCES": pulumi.Output.concat(
                '[{ "endpoint": "', self.args.lang_server_endpoint, '" }]'
            ),
            "EXTERNAL_URL": self.external_url(),
            "BPFS_STORAGE": self.args.bpfs_storage,
        }
        if self.args.bpfs_storage != "database":
            return env

        if self.database is None or self.ca_config_map is None:
            raise ConfigurationError("Database storage requested but the database is not provisioned.")
        env.update({
            "DATABASE_URL": self.database.private_uri.apply(with_forced_ssl),
            "DATABASE_POOL": json.dumps({"min": 2, "max": self.args.database.pool_size}),
            "PGSSLMODE": "require",
            "NODE_EXTRA_CA_CERTS": f"{CA_MOUNT_PATH}/{CA_FILE}",
        })
        return env

    def _create_deployment(self):
        self.environment = self._build_environment()
        self.volume_mounts = [self.app.claim_mount("/botpress/data")]
        extra_volumes = []
        if self.ca_config_map is not None:
            self.volume_mounts.append(VolumeMountArgs(name=CA_VOLUME, mount_path=CA_MOUNT_PATH, read_only=True))
            extra_volumes.append(VolumeArgs(
                name=CA_VOLUME,
                config_map=ConfigMapVolumeSourceArgs(name=self.ca_config_map.metadata["name"]),
            ))

        container = ContainerArgs(
            name=POD_NAME,
            image=f"botpress/server:{self.args.server_version}",
            ports=[ContainerPortArgs(name="http", container_port=SERVER_PORT)],
            command=["/bin/bash"],
            args=["-c", "./duckling & ./bp"],
            env=[EnvVarArgs(name=k, value=v) for k, v in self.environment.items()],
            volume_mounts=self.volume_mounts,
        )
        self.app.create_deployment(POD_NAME, container, extra_volumes=extra_volumes)
