from typing import Optional

import pulumi
import pulumi_kubernetes as k8s
from pulumi_kubernetes.core.v1 import Namespace
from pulumi_kubernetes.helm.v3 import Release, ReleaseArgs, RepositoryOptsArgs
from pulumi_kubernetes.meta.v1 import ObjectMetaArgs

from util.errors import NotInitializedError

APP_SVCS_NAMESPACE = "app-svcs"
RELEASE_NAME = "ingress-nginx"

# Nginx http-level config shared by every ingress. The `my_cache` zone is
# referenced by the assets ingress snippet.
HTTP_SNIPPET = """
# Prevent displaying Botpress in an iframe (clickjacking protection)
add_header X-Frame-Options SAMEORIGIN;

# Prevent browsers from detecting the mimetype if not sent by the server.
add_header X-Content-Type-Options nosniff;

# Force enable the XSS filter for the website, in case it was disabled manually
add_header X-XSS-Protection "1; mode=block";

# Configure the cache for static assets
proxy_cache_path /tmp/nginx_cache levels=1:2 keys_zone=my_cache:10m max_size=10g inactive=60m use_temp_path=off;
"""

def _controller_values():
    return {
        "controller": {
            "publishService": {"enabled": True},
            "allowSnippetAnnotations": True,
            "service": {
                "type": "LoadBalancer",
            },
            "ingressClass": "nginx",
            "ingressClassResource": {
                "name": "nginx",
                "enabled": True,
                "default": False,
            },
            "config": {
                "proxy-body-size": "10M",
                "http-snippet": HTTP_SNIPPET,
            },
        },
    }

def _load_balancer_address(status) -> Optional[str]:
    lb = status.load_balancer if status else None
    ingress = lb.ingress if lb else None
    if not ingress:
        pulumi.log.info("Ingress controller load balancer has no address yet (pending).")
        return None
    return ingress[0].ip or ingress[0].hostname


class SharedIngress:
    """The single ingress-nginx controller shared by every app service.

    Created by the composition root and handed to each workload. The first
    `ensure()` declares the `app-svcs` namespace and the Helm release; later
    calls return the same release.
    """

    def __init__(self, *, provider: k8s.Provider, chart_version: str):
        self._provider = provider
        self._chart_version = chart_version
        self.namespace: Optional[Namespace] = None
        self.release: Optional[Release] = None
        self._address: Optional[pulumi.Output] = None

    @property
    def initialized(self) -> bool:
        return self.release is not None

    def ensure(self) -> Release:
        if self.release is not None:
            return self.release

        opts = pulumi.ResourceOptions(provider=self._provider)
        self.namespace = Namespace(
            APP_SVCS_NAMESPACE,
            metadata=ObjectMetaArgs(name=APP_SVCS_NAMESPACE),
            opts=opts,
        )
        self.release = Release(
            "nginx",
            ReleaseArgs(
                name=RELEASE_NAME,
                chart="ingress-nginx",
                version=self._chart_version,
                namespace=self.namespace.metadata["name"],
                repository_opts=RepositoryOptsArgs(repo="https://kubernetes.github.io/ingress-nginx"),
                values=_controller_values(),
            ),
            opts=pulumi.ResourceOptions(provider=self._provider, depends_on=[self.namespace]),
        )
        return self.release

    def address(self) -> pulumi.Output:
        """External address of the controller's load balancer.

        Resolves to None until DO reports one.
        """
        if self.release is None:
            raise NotInitializedError("Ingress controller is not yet initialized.")
        if self._address is None:
            svc = k8s.core.v1.Service.get(
                "nginx-ingress-controller",
                f"{APP_SVCS_NAMESPACE}/{RELEASE_NAME}-controller",
                opts=pulumi.ResourceOptions(provider=self._provider, depends_on=[self.release]),
            )
            self._address = svc.status.apply(_load_balancer_address)
        return self._address
