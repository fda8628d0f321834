from typing import Optional

import pulumi
from pulumi_kubernetes.core.v1 import ContainerArgs, ContainerPortArgs

from workloads.app_service import AppService, AppServiceArgs
from workloads.system import SharedIngress

SERVER_PORT = 3100
POD_NAME = "botpress-lang-server"
SERVICE_NAME = "botpress-lang-server-service"


class LangServer(pulumi.ComponentResource):
    """The Botpress language server used by the main server's NLU module."""

    def __init__(self, args: AppServiceArgs, *, ingress: SharedIngress, opts: Optional[pulumi.ResourceOptions] = None):
        super().__init__("botpress:apps:LangServer", "lang-server", None, opts)
        self.args = args
        self.app = AppService("lang-server", args, ingress=ingress, parent=self)

        self.app.create_deployment(POD_NAME, self._container())
        self.app.create_service(SERVICE_NAME, SERVER_PORT)

        self.register_outputs({"endpoint": self.get_service_endpoint()})

    def _container(self) -> ContainerArgs:
        return ContainerArgs(
            name=POD_NAME,
            image=f"botpress/server:{self.args.server_version}",
            ports=[ContainerPortArgs(name="http", container_port=SERVER_PORT)],
            command=["/bin/bash"],
            args=["-c", "./bp lang --langDir /botpress/data/embeddings"],
            volume_mounts=[self.app.claim_mount("/botpress/data")],
        )

    def get_service_endpoint(self) -> pulumi.Output[str]:
        service = self.app.get_service()
        return pulumi.Output.concat(
            "http://", service.metadata["name"], ".", self.args.namespace, ":", str(SERVER_PORT)
        )
