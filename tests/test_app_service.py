import pulumi
import pytest
from pulumi_kubernetes.core.v1 import ContainerArgs

from conftest import LB_ADDRESS
from util.errors import ConfigurationError, NotInitializedError
from workloads.app_service import AppService, AppServiceArgs
from workloads.lang_server import LangServer
from workloads.main_server import MainServer, MainServerArgs
from workloads.system import _controller_values

RELEASE = "kubernetes:helm.sh/v3:Release"
NAMESPACE = "kubernetes:core/v1:Namespace"


def app_args(**kwargs):
    values = dict(cluster_id="C", namespace="apps", num_replicas=1, storage_size="5Gi", server_version="12.26.7")
    values.update(kwargs)
    return AppServiceArgs(**values)


@pulumi.runtime.test
def test_address_before_ensure_raises(mocks, make_ingress):
    ingress = make_ingress()
    assert not ingress.initialized
    with pytest.raises(NotInitializedError, match="Ingress controller is not yet initialized"):
        ingress.address()


@pulumi.runtime.test
def test_getters_raise_until_created(mocks, make_ingress):
    parent = pulumi.ComponentResource("test:index:Parent", "parent")
    app = AppService("svc", app_args(), ingress=make_ingress(), parent=parent)

    with pytest.raises(NotInitializedError, match="Deployment is not yet initialized"):
        app.get_deployment()
    with pytest.raises(NotInitializedError, match="Service is not yet initialized"):
        app.get_service()
    return app.pvc.urn


@pulumi.runtime.test
def test_service_before_deployment_is_fatal(mocks, make_ingress):
    parent = pulumi.ComponentResource("test:index:Parent", "parent")
    app = AppService("svc", app_args(), ingress=make_ingress(), parent=parent)

    with pytest.raises(ConfigurationError, match="without a deployment"):
        app.create_service("svc-service", 8080)
    assert app.service is None
    return app.pvc.urn


@pulumi.runtime.test
def test_storage_claim_is_single_writer(mocks, make_ingress):
    parent = pulumi.ComponentResource("test:index:Parent", "parent")
    app = AppService("svc", app_args(storage_size="1Gi"), ingress=make_ingress(), parent=parent)

    def check(spec):
        assert spec.access_modes == ["ReadWriteOnce"]
        assert spec.resources.requests == {"storage": "1Gi"}

    return app.pvc.spec.apply(check)


def run_two_workloads(ingress):
    lang = LangServer(app_args(), ingress=ingress)
    main = MainServer(
        MainServerArgs(
            cluster_id="C",
            namespace="apps",
            num_replicas=1,
            storage_size="1Gi",
            server_version="12.26.7",
            lang_server_endpoint=lang.get_service_endpoint(),
            bpfs_storage="disk",
        ),
        ingress=ingress,
    )
    return lang, main


def test_ingress_controller_created_once(mocks, make_ingress):
    holder = {}

    @pulumi.runtime.test
    def compose():
        ingress = make_ingress()
        lang, main = run_two_workloads(ingress)
        holder.update(ingress=ingress, lang=lang, main=main, release=ingress.release)
        return pulumi.Output.all(
            ingress.release.urn, ingress.namespace.urn, lang.urn, main.urn,
            *[rule.urn for rule in main.ingress_rules],
        )

    compose()

    assert holder["lang"].app.ingress is holder["main"].app.ingress
    assert holder["ingress"].release is holder["release"]
    assert len(mocks.of_type(RELEASE)) == 1
    assert [r.name for r in mocks.of_type(NAMESPACE)] == ["app-svcs"]


@pulumi.runtime.test
def test_ingress_address_resolves(mocks, make_ingress):
    ingress = make_ingress()
    ingress.ensure()
    first = ingress.address()
    assert ingress.address() is first

    def check(address):
        assert address == LB_ADDRESS

    return first.apply(check)


@pulumi.runtime.test
def test_ingress_address_pending_is_none(pending_mocks, make_ingress):
    ingress = make_ingress()
    ingress.ensure()

    def check(address):
        assert address is None

    return ingress.address().apply(check)


@pulumi.runtime.test
def test_deployment_mounts_generated_claim(mocks, make_ingress):
    parent = pulumi.ComponentResource("test:index:Parent", "parent")
    app = AppService("svc", app_args(), ingress=make_ingress(), parent=parent)
    container = ContainerArgs(name="svc", image="botpress/server:12.26.7", volume_mounts=[app.claim_mount("/data")])
    deployment = app.create_deployment("svc", container)

    claim_name = app.pvc.metadata.apply(lambda m: m.name)
    mounted = deployment.spec.apply(lambda s: s.template.spec.volumes[0].persistent_volume_claim.claim_name)

    def check(args):
        claim, mounted_claim = args
        assert claim.startswith("svc-pvc-rw-")
        assert mounted_claim == claim

    return pulumi.Output.all(claim_name, mounted).apply(check)


def test_controller_config_keeps_logs_on_stdout():
    config = _controller_values()["controller"]["config"]
    assert config["proxy-body-size"] == "10M"
    assert "keys_zone=my_cache" in config["http-snippet"]
    assert "access-log-path" not in config
    assert "error-log-path" not in config
