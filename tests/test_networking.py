import pulumi

from conftest import LB_ADDRESS
from workloads.networking import ensure_domain_record, ensure_vpc

VPC = "digitalocean:index/vpc:Vpc"
DOMAIN = "digitalocean:index/domain:Domain"


@pulumi.runtime.test
def test_no_vpc_without_ip_range(mocks):
    assert ensure_vpc(name="botpress-cluster", region="sfo2", ip_range=None) is None
    assert mocks.of_type(VPC) == []


@pulumi.runtime.test
def test_vpc_with_ip_range(mocks):
    vpc = ensure_vpc(name="botpress-cluster", region="sfo2", ip_range="10.10.0.0/16")

    def check(args):
        name, ip_range = args
        assert name == "botpress-cluster-sfo2-vpc"
        assert ip_range == "10.10.0.0/16"

    return pulumi.Output.all(vpc.name, vpc.ip_range).apply(check)


@pulumi.runtime.test
def test_no_domain_record_without_domain(mocks):
    assert ensure_domain_record(domain_name=None, ip_address=pulumi.Output.from_input(LB_ADDRESS)) is None
    assert mocks.of_type(DOMAIN) == []


@pulumi.runtime.test
def test_domain_record_points_at_ingress(mocks):
    domain = ensure_domain_record(domain_name="bot.example.com", ip_address=pulumi.Output.from_input(LB_ADDRESS))

    def check(args):
        name, ip_address = args
        assert name == "bot.example.com"
        assert ip_address == LB_ADDRESS

    return pulumi.Output.all(domain.name, domain.ip_address).apply(check)
