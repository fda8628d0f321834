from dataclasses import dataclass
from typing import List, Optional, Sequence

import pulumi
from pulumi_kubernetes import apps, core, networking
from pulumi_kubernetes.apps.v1 import DeploymentSpecArgs
from pulumi_kubernetes.core.v1 import (
    ContainerArgs,
    PersistentVolumeClaimSpecArgs,
    PersistentVolumeClaimVolumeSourceArgs,
    PodSpecArgs,
    PodTemplateSpecArgs,
    ServicePortArgs,
    ServiceSpecArgs,
    VolumeArgs,
    VolumeMountArgs,
    VolumeResourceRequirementsArgs,
)
from pulumi_kubernetes.meta.v1 import LabelSelectorArgs, ObjectMetaArgs

from util.errors import ConfigurationError, NotInitializedError
from workloads.system import SharedIngress

DATA_VOLUME = "data"


@dataclass
class AppServiceArgs:
    cluster_id: pulumi.Input[str]
    namespace: pulumi.Input[str]
    num_replicas: int
    storage_size: str
    server_version: str


class AppService:
    """A Deployment exposed as a Service, backed by its own PVC.

    Workload components hold one of these and delegate the shared parts to
    it: the claim, the deployment/service plumbing and the shared ingress
    controller.
    """

    def __init__(self, name: str, args: AppServiceArgs, *, ingress: SharedIngress, parent: pulumi.Resource):
        self.name = name
        self.args = args
        self.ingress = ingress
        self.parent = parent

        self.deployment: Optional[apps.v1.Deployment] = None
        self.service: Optional[core.v1.Service] = None
        self.ingress_rules: Optional[List[networking.v1.Ingress]] = None

        self.pvc: Optional[core.v1.PersistentVolumeClaim] = self._create_storage()
        ingress.ensure()

    def get_deployment(self) -> apps.v1.Deployment:
        if self.deployment is None:
            raise NotInitializedError("Deployment is not yet initialized.")
        return self.deployment

    def get_service(self) -> core.v1.Service:
        if self.service is None:
            raise NotInitializedError("Service is not yet initialized.")
        return self.service

    def base_metadata(self, **kwargs) -> ObjectMetaArgs:
        return ObjectMetaArgs(namespace=self.args.namespace, **kwargs)

    def opts(self, **kwargs) -> pulumi.ResourceOptions:
        return pulumi.ResourceOptions(parent=self.parent, **kwargs)

    def claim_volume(self) -> VolumeArgs:
        if self.pvc is None:
            raise ConfigurationError(
                "PersistentVolumeClaim is not initialized. Cannot create a deployment without it."
            )
        return VolumeArgs(
            name=DATA_VOLUME,
            persistent_volume_claim=PersistentVolumeClaimVolumeSourceArgs(claim_name=self.pvc.metadata["name"]),
        )

    def claim_mount(self, mount_path: str) -> VolumeMountArgs:
        return VolumeMountArgs(name=DATA_VOLUME, mount_path=mount_path)

    def create_deployment(
        self,
        name: str,
        container: ContainerArgs,
        *,
        extra_volumes: Sequence[VolumeArgs] = (),
    ) -> apps.v1.Deployment:
        volumes = [self.claim_volume(), *extra_volumes]
        labels = {"app": name}
        # Without an explicit name the service selector can't find the pods.
        self.deployment = apps.v1.Deployment(
            name,
            metadata=self.base_metadata(name=name, labels=labels),
            spec=DeploymentSpecArgs(
                replicas=self.args.num_replicas,
                selector=LabelSelectorArgs(match_labels=labels),
                template=PodTemplateSpecArgs(
                    metadata=ObjectMetaArgs(labels=labels),
                    spec=PodSpecArgs(containers=[container], volumes=volumes),
                ),
            ),
            opts=self.opts(),
        )
        return self.deployment

    def create_service(self, name: str, port: int) -> core.v1.Service:
        if self.deployment is None:
            raise ConfigurationError("Cannot create a service without a deployment.")

        self.service = core.v1.Service(
            name,
            metadata=self.base_metadata(name=name),
            spec=ServiceSpecArgs(
                type="ClusterIP",
                selector={"app": self.deployment.metadata["name"]},
                ports=[ServicePortArgs(name="http", port=port, target_port=port)],
            ),
            opts=self.opts(),
        )
        return self.service

    def _create_storage(self) -> core.v1.PersistentVolumeClaim:
        # DO volumes only support ReadWriteOnce.
        return core.v1.PersistentVolumeClaim(
            f"{self.name}-pvc-rw",
            metadata=self.base_metadata(),
            spec=PersistentVolumeClaimSpecArgs(
                access_modes=["ReadWriteOnce"],
                resources=VolumeResourceRequirementsArgs(requests={"storage": self.args.storage_size}),
            ),
            opts=self.opts(),
        )
