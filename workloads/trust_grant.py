"""Database firewall trust grant as a Pulumi dynamic resource.

Authorizes a DOKS cluster to reach a managed database by keeping one
``k8s`` rule in the database's firewall. The DO API replaces the whole
rule list on every PUT, so each operation reads the current rules, edits
only the rule carrying this grant's uuid, and writes the list back.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pulumi
import requests
from pulumi.dynamic import (
    CreateResult,
    DiffResult,
    ReadResult,
    Resource,
    ResourceProvider,
    UpdateResult,
)

DEFAULT_API_ENDPOINT = "https://api.digitalocean.com"
RULE_TYPE = "k8s"


@dataclass
class DatabaseFirewallClient:
    """Minimal client for the DO database firewall endpoints."""

    token: str = field(repr=False)
    base_url: str = DEFAULT_API_ENDPOINT
    timeout: int = 30

    def __post_init__(self):
        self.base_url = self.base_url.rstrip("/")

    @property
    def headers(self):
        return {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _url(self, db_cluster_id: str) -> str:
        return f"{self.base_url}/v2/databases/{db_cluster_id}/firewall"

    def get_rules(self, db_cluster_id: str) -> List[Dict[str, Any]]:
        response = requests.get(self._url(db_cluster_id), headers=self.headers, timeout=self.timeout)
        response.raise_for_status()
        return response.json().get("rules") or []

    def put_rules(self, db_cluster_id: str, rules: List[Dict[str, Any]]) -> None:
        response = requests.put(
            self._url(db_cluster_id),
            headers=self.headers,
            json={"rules": rules},
            timeout=self.timeout,
        )
        response.raise_for_status()


def _client(props: Dict[str, Any]) -> DatabaseFirewallClient:
    return DatabaseFirewallClient(
        token=props["api_token"],
        base_url=props.get("api_endpoint") or DEFAULT_API_ENDPOINT,
    )


def _find_rule(rules: List[Dict[str, Any]], rule_uuid: str) -> Optional[Dict[str, Any]]:
    return next((r for r in rules if r.get("uuid") == rule_uuid), None)


def _rule_body(rule: Dict[str, Any]) -> Dict[str, Any]:
    # The PUT body only accepts these keys; created_at and cluster_uuid are
    # server-assigned.
    return {k: rule[k] for k in ("uuid", "type", "value") if k in rule}


def _desired_rule(props: Dict[str, Any]) -> Dict[str, Any]:
    return {"uuid": props["rule_uuid"], "type": RULE_TYPE, "value": props["k8s_cluster_id"]}


def _outs(props: Dict[str, Any], rule: Dict[str, Any]) -> Dict[str, Any]:
    return {**props, "rule": rule}


class DatabaseTrustGrantProvider(ResourceProvider):
    def create(self, props):
        client = _client(props)
        db_id = props["db_cluster_id"]
        rules = client.get_rules(db_id)
        desired = _desired_rule(props)

        current = _find_rule(rules, props["rule_uuid"])
        if current is None or current.get("value") != desired["value"]:
            others = [_rule_body(r) for r in rules if r.get("uuid") != desired["uuid"]]
            client.put_rules(db_id, [*others, desired])

        return CreateResult(id_=props["rule_uuid"], outs=_outs(props, desired))

    def read(self, id_, props):
        rule = _find_rule(_client(props).get_rules(props["db_cluster_id"]), id_)
        if rule is None:
            # Rule removed out of band; an empty id tells the engine it's gone.
            return ReadResult(id_="", outs={})
        return ReadResult(
            id_=id_,
            outs=_outs({**props, "k8s_cluster_id": rule.get("value")}, _rule_body(rule)),
        )

    def diff(self, id_, olds, news):
        replaces = [k for k in ("db_cluster_id", "rule_uuid") if olds.get(k) != news.get(k)]
        updates = [k for k in ("k8s_cluster_id", "api_endpoint") if olds.get(k) != news.get(k)]
        return DiffResult(
            changes=bool(replaces or updates),
            replaces=replaces,
            delete_before_replace=True,
        )

    def update(self, id_, olds, news):
        client = _client(news)
        db_id = news["db_cluster_id"]
        desired = {**_desired_rule(news), "uuid": id_}
        others = [_rule_body(r) for r in client.get_rules(db_id) if r.get("uuid") != id_]
        client.put_rules(db_id, [*others, desired])
        return UpdateResult(outs=_outs(news, desired))

    def delete(self, id_, props):
        client = _client(props)
        db_id = props["db_cluster_id"]
        rules = client.get_rules(db_id)
        if _find_rule(rules, id_) is None:
            return
        client.put_rules(db_id, [_rule_body(r) for r in rules if r.get("uuid") != id_])


@dataclass
class DatabaseTrustGrantArgs:
    db_cluster_id: pulumi.Input[str]
    k8s_cluster_id: pulumi.Input[str]
    rule_uuid: pulumi.Input[str]
    api_token: pulumi.Input[str]
    api_endpoint: Optional[pulumi.Input[str]] = None


class DatabaseTrustGrant(Resource):
    rule: pulumi.Output[dict]

    def __init__(self, name: str, args: DatabaseTrustGrantArgs, opts: Optional[pulumi.ResourceOptions] = None):
        props = {
            "db_cluster_id": args.db_cluster_id,
            "k8s_cluster_id": args.k8s_cluster_id,
            "rule_uuid": args.rule_uuid,
            "api_token": pulumi.Output.secret(args.api_token),
            "api_endpoint": args.api_endpoint or DEFAULT_API_ENDPOINT,
            "rule": None,
        }
        opts = pulumi.ResourceOptions.merge(
            opts, pulumi.ResourceOptions(additional_secret_outputs=["api_token"])
        )
        super().__init__(DatabaseTrustGrantProvider(), name, props, opts)
