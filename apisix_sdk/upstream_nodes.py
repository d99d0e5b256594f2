"""
Upstream node sets

APISIX accepts upstream nodes either as a list of {host, port, weight}
records or as a mapping of "host:port" to weight. Both are decoded once at the
boundary into ListForm or MapForm and handled explicitly from there on.
"""
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Union

from core.exceptions import ValidationError


@dataclass(frozen=True)
class UpstreamNode:
    host: str
    port: int
    weight: int = 1
    priority: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"host": self.host, "port": self.port, "weight": self.weight}
        if self.priority is not None:
            data["priority"] = self.priority
        if self.metadata is not None:
            data["metadata"] = self.metadata
        return data


@dataclass(frozen=True)
class ListForm:
    nodes: List[UpstreamNode] = field(default_factory=list)


@dataclass(frozen=True)
class MapForm:
    weights: Dict[str, int] = field(default_factory=dict)


UpstreamNodes = Union[ListForm, MapForm]


def split_address(address: str) -> tuple:
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ValidationError(f"Invalid node address: {address}", field="nodes")
    return host, int(port)


def parse_nodes(raw: Any) -> UpstreamNodes:
    """Decode the wire representation; a missing node set becomes an empty MapForm"""
    if raw is None:
        return MapForm()
    if isinstance(raw, list):
        nodes = []
        for item in raw:
            try:
                nodes.append(
                    UpstreamNode(
                        host=item["host"],
                        port=int(item["port"]),
                        weight=int(item.get("weight", 1)),
                        priority=item.get("priority"),
                        metadata=item.get("metadata"),
                    )
                )
            except (KeyError, TypeError, ValueError) as e:
                raise ValidationError(f"Invalid upstream node: {item}", field="nodes") from e
        return ListForm(nodes)
    if isinstance(raw, dict):
        return MapForm({str(address): int(weight) for address, weight in raw.items() if weight is not None})
    raise ValidationError(f"Unsupported upstream nodes value: {raw!r}", field="nodes")


def to_wire(nodes: UpstreamNodes) -> Union[List[Dict[str, Any]], Dict[str, int]]:
    if isinstance(nodes, ListForm):
        return [node.to_dict() for node in nodes.nodes]
    return dict(nodes.weights)


def to_list_form(nodes: UpstreamNodes) -> ListForm:
    if isinstance(nodes, ListForm):
        return nodes
    result = []
    for address, weight in nodes.weights.items():
        host, port = split_address(address)
        result.append(UpstreamNode(host=host, port=port, weight=weight))
    return ListForm(result)


def to_map_form(nodes: UpstreamNodes) -> MapForm:
    """Convert to MapForm; priority and metadata do not survive"""
    if isinstance(nodes, MapForm):
        return nodes
    return MapForm({node.address: node.weight for node in nodes.nodes})


def add_node(nodes: UpstreamNodes, host: str, port: int, weight: int = 1) -> UpstreamNodes:
    if isinstance(nodes, ListForm):
        return ListForm([*nodes.nodes, UpstreamNode(host=host, port=port, weight=weight)])
    return MapForm({**nodes.weights, f"{host}:{port}": weight})


def remove_node(nodes: UpstreamNodes, host: str, port: int) -> UpstreamNodes:
    if isinstance(nodes, ListForm):
        return ListForm([node for node in nodes.nodes if not (node.host == host and node.port == port)])
    address = f"{host}:{port}"
    return MapForm({key: weight for key, weight in nodes.weights.items() if key != address})


def update_weight(nodes: UpstreamNodes, host: str, port: int, weight: int) -> UpstreamNodes:
    if isinstance(nodes, ListForm):
        return ListForm(
            [
                replace(node, weight=weight) if node.host == host and node.port == port else node
                for node in nodes.nodes
            ]
        )
    address = f"{host}:{port}"
    if address not in nodes.weights:
        return nodes
    return MapForm({**nodes.weights, address: weight})


def removal_patch(nodes: UpstreamNodes, host: str, port: int) -> Union[List[Dict[str, Any]], Dict[str, Optional[int]]]:
    """
    PATCH body removing one node

    PATCH merges mappings, so MapForm removal has to send the address with a
    null weight; ListForm replaces the whole array.
    """
    if isinstance(nodes, ListForm):
        return to_wire(remove_node(nodes, host, port))
    return {**nodes.weights, f"{host}:{port}": None}
