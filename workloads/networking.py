from typing import Optional

import pulumi
import pulumi_digitalocean as do

from util.naming import with_suffix

def ensure_vpc(*, name: str, region: str, ip_range: Optional[str]) -> Optional[do.Vpc]:
    if not ip_range:
        pulumi.log.info("vpcIpRange not set; using the region's default VPC")
        return None

    vpc_name = with_suffix(f"{name}-{region}", "vpc")
    return do.Vpc(
        vpc_name,
        name=vpc_name,
        region=region,
        ip_range=ip_range,
        description="Botpress cluster and database network",
    )

def ensure_domain_record(*, domain_name: Optional[str], ip_address: pulumi.Input[Optional[str]]) -> Optional[do.Domain]:
    if not domain_name:
        return None

    # The domain must already be registered and delegated to DO's nameservers;
    # DO is not a registrar.
    return do.Domain(
        "botpress-domain",
        name=domain_name,
        ip_address=ip_address,
    )
