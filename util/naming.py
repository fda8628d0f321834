import re

def with_suffix(base: str, suffix: str) -> str:
    # ensure we don’t get "-cluster-cluster" if callers already appended
    return base if base.endswith(suffix) else f"{base}-{suffix}"

def dns_label(value: str) -> str:
    # DO database and k8s names: lowercase alnum and dashes, max 63 chars
    label = re.sub(r"[^a-z0-9-]+", "-", value.lower()).strip("-")
    return label[:63].rstrip("-")
