#
# This file is part of clab-sync
# Copyright (c) 2025, the clab-sync authors
# All rights reserved.
#
# Python synchronization engine for containerlab topology documents
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
"""
Write graph edits back into a topology document.

A reconciliation runs in a fixed order: diff the node elements against the
document, mutate nodes (rename, remove, insert), mutate links, then update
node scalars. Every change is a targeted edit of the document, so comments
and formatting elsewhere are kept.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .document import Document
from .exceptions import ReconcileError
from .link_classifier import (
    classify_link,
    is_bridge_kind,
    is_special_endpoint_id,
    link_key,
    special_key,
    special_type_of,
    split_endpoint,
    veth_key,
)
from .models.elements import (
    SYNTHETIC_ROLES,
    element_data,
    element_role,
    extra_data,
    is_edge_element,
    is_node_element,
)
from .models.link import (
    HOSTY_TYPES,
    VX_TYPES,
    DummyLink,
    Endpoint,
    Link,
    LinkFormat,
    LinkType,
    VethLink,
)
from .models.topology import INHERITED_PROPERTIES, Topology, resolve_property
from .utils import is_empty, to_number

_LOGGER = logging.getLogger(__name__)

TOPOLOGY_PATH = ("topology",)
NODES_PATH = ("topology", "nodes")
LINKS_PATH = ("topology", "links")

NODE_FIELDS = ("kind", "image", "type", "group", "mgmt-ipv4", "mgmt-ipv6")
LINK_EXT_FIELDS = (
    ("extHostInterface", "host-interface"),
    ("extMode", "mode"),
    ("extRemote", "remote"),
    ("extVni", "vni"),
    ("extDstPort", "dst-port"),
    ("extSrcPort", "src-port"),
)
OPTIONAL_LINK_FIELDS = frozenset({"mtu", "mode", "src-port"})
NUMERIC_LINK_FIELDS = frozenset({"mtu", "vni", "dst-port", "src-port"})


@dataclass
class ReconcileResult:
    changed: bool = False
    added_nodes: list[str] = field(default_factory=list)
    removed_nodes: list[str] = field(default_factory=list)
    renamed_nodes: list[tuple[str, str]] = field(default_factory=list)
    updated_nodes: list[str] = field(default_factory=list)
    added_links: list[str] = field(default_factory=list)
    removed_links: list[str] = field(default_factory=list)
    updated_links: list[str] = field(default_factory=list)


@dataclass
class _Plan:
    # document key -> node element data
    desired: dict[str, dict[str, Any]] = field(default_factory=dict)
    # keys backed by a real node element rather than only by an alias
    real: set[str] = field(default_factory=set)
    # graph node id -> document key
    aliases: dict[str, str] = field(default_factory=dict)
    renames: list[tuple[str, str]] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    inserted: list[str] = field(default_factory=list)


@dataclass
class _EdgeSpec:
    key: str
    link_type: LinkType | None
    source: Endpoint
    target: Endpoint
    special_id: str
    extra: dict[str, Any]


def _same(current: Any, new: Any) -> bool:
    return ("" if current is None else str(current)) == str(new)


def _link_value(key: str, value: Any) -> Any:
    if key in NUMERIC_LINK_FIELDS:
        number = to_number(value)
        if number is not None:
            return number
    return value if isinstance(value, (int, float)) else str(value)


def _edge_spec(data: dict[str, Any], aliases: dict[str, str]) -> _EdgeSpec | None:
    source_id = str(data.get("source") or "")
    target_id = str(data.get("target") or "")
    if not source_id or not target_id:
        return None
    source = Endpoint(
        aliases.get(source_id, source_id), str(data.get("sourceEndpoint") or "")
    )
    target = Endpoint(
        aliases.get(target_id, target_id), str(data.get("targetEndpoint") or "")
    )
    extra = data.get("extraData") if isinstance(data.get("extraData"), dict) else {}
    for special, real in ((target, source), (source, target)):
        if not is_special_endpoint_id(special.node):
            continue
        link_type = special_type_of(special.node)
        if link_type is not None and not is_special_endpoint_id(real.node):
            return _EdgeSpec(
                special_key(link_type, real),
                link_type,
                real,
                special,
                special.node,
                extra,
            )
    return _EdgeSpec(veth_key(source, target), None, source, target, "", extra)


class DocumentReconciler:
    def __init__(self, document: Document | None, topology: Topology | None = None):
        """
        Applies a set of graph elements to a topology document.

        :param document: The document to edit, owned by this reconciler
            while `reconcile` runs.
        :param topology: The topology last parsed from the document. It is
            used to recognize bridge nodes behind alias elements.
        """
        self._document = document
        self._topology = topology
        self._result = ReconcileResult()

    def __repr__(self):
        name = self._topology.name if self._topology else None
        return f"{self.__class__.__name__}({name!r})"

    def reconcile(self, elements: list[dict[str, Any]]) -> ReconcileResult:
        """
        Make the document describe the given graph.

        :param elements: The complete set of graph elements.
        :returns: What was changed.
        :raises ReconcileError: If there is no document or its nodes are not
            a mapping; nothing is written in that case.
        """
        self._check_preconditions()
        document = self._document
        original = document.text
        self._result = ReconcileResult()
        try:
            plan = self._diff(elements)
            self._mutate_nodes(plan)
            self._mutate_links(elements, plan)
            self._mutate_scalars(plan)
        except Exception:
            if document.text != original:
                document.replace_text(original)
            raise
        self._result.changed = document.text != original
        if self._result.changed:
            _LOGGER.info(
                f"Reconciled document: +{len(self._result.added_nodes)}/"
                f"-{len(self._result.removed_nodes)} nodes, "
                f"+{len(self._result.added_links)}/"
                f"-{len(self._result.removed_links)} links"
            )
        else:
            _LOGGER.debug("Reconciled document without changes")
        return self._result

    def _check_preconditions(self) -> None:
        if self._document is None:
            raise ReconcileError(
                ReconcileError.MISSING_DOCUMENT, "No parsed document to reconcile"
            )
        for path in (TOPOLOGY_PATH, NODES_PATH):
            if self._document.has(path) and not (
                self._document.is_mapping(path) or self._document.get(path) is None
            ):
                raise ReconcileError(
                    ReconcileError.NODES_NOT_A_MAP, "Topology nodes are not a mapping"
                )

    def _inheritance(self) -> tuple[dict[str, Any], dict[str, Any]]:
        defaults = self._document.get(TOPOLOGY_PATH + ("defaults",))
        kinds = self._document.get(TOPOLOGY_PATH + ("kinds",))
        return (
            defaults if isinstance(defaults, dict) else {},
            kinds if isinstance(kinds, dict) else {},
        )

    # diff

    def _diff(self, elements: list[dict[str, Any]]) -> _Plan:
        document_ids = self._document.keys(NODES_PATH)
        plan = _Plan()
        for element in elements:
            if not is_node_element(element) or element_role(element) in SYNTHETIC_ROLES:
                continue
            data = element_data(element)
            node_id = str(data.get("id") or "")
            if not node_id:
                continue
            yaml_id = str(extra_data(element).get("extYamlNodeId") or "")
            if yaml_id and yaml_id != node_id:
                self._plan_alias(plan, node_id, yaml_id, data, document_ids)
                continue
            if is_special_endpoint_id(node_id):
                continue
            name = str(data.get("name") or node_id)
            if name != node_id:
                plan.aliases[node_id] = name
                if node_id in document_ids and name not in document_ids:
                    plan.renames.append((node_id, name))
            plan.desired[name] = data
            plan.real.add(name)

        renamed = dict(plan.renames)
        current = [renamed.get(node_id, node_id) for node_id in document_ids]
        plan.removed = [node_id for node_id in current if node_id not in plan.desired]
        plan.inserted = [node_id for node_id in plan.desired if node_id not in current]
        return plan

    def _is_bridge(self, node_id: str) -> bool:
        if self._topology is None or node_id not in self._topology.nodes:
            return True
        return is_bridge_kind(self._topology.nodes[node_id].kind)

    def _plan_alias(
        self,
        plan: _Plan,
        node_id: str,
        yaml_id: str,
        data: dict[str, Any],
        document_ids: list[str],
    ) -> None:
        """Resolve a `<bridge>:<iface>` alias element to its bridge node."""
        plan.aliases[node_id] = yaml_id
        base = node_id.split(":", 1)[0]
        if (
            base != yaml_id
            and base in document_ids
            and yaml_id not in document_ids
            and self._is_bridge(base)
            and (base, yaml_id) not in plan.renames
        ):
            plan.renames.append((base, yaml_id))
            plan.aliases[base] = yaml_id
            plan.desired.pop(base, None)
            plan.real.discard(base)
        plan.desired.setdefault(yaml_id, data)

    # nodes

    def _mutate_nodes(self, plan: _Plan) -> None:
        document = self._document
        for old, new in plan.renames:
            document.rename_key(NODES_PATH, old, new)
            self._rewrite_link_endpoints(old, new)
            self._result.renamed_nodes.append((old, new))
            _LOGGER.debug(f"Renamed node {old} to {new}")
        for node_id in plan.removed:
            self._remove_links_of(node_id)
            document.delete_key(NODES_PATH, node_id)
            self._result.removed_nodes.append(node_id)
            _LOGGER.debug(f"Removed node {node_id}")
        for node_id in plan.inserted:
            self._insert_node(node_id, plan.desired[node_id])
            self._result.added_nodes.append(node_id)
            _LOGGER.debug(f"Added node {node_id}")

    def _ensure_topology(self) -> None:
        if not self._document.has(TOPOLOGY_PATH):
            self._document.insert_entry((), "topology", {})

    def _insert_node(self, node_id: str, data: dict[str, Any]) -> None:
        extra = data.get("extraData") if isinstance(data.get("extraData"), dict) else {}
        defaults, kinds = self._inheritance()
        props: dict[str, Any] = {}
        for key in NODE_FIELDS:
            value = extra.get(key)
            if is_empty(value):
                continue
            if key in INHERITED_PROPERTIES:
                owner = {"kind": props.get("kind") or extra.get("kind")}
                if key == "kind":
                    owner = {}
                inherited = resolve_property(owner, key, defaults, kinds)
                if inherited is not None and _same(inherited, value):
                    continue
            props[key] = value

        self._ensure_topology()
        if not self._document.has(NODES_PATH):
            self._document.insert_entry(TOPOLOGY_PATH, "nodes", {node_id: props})
        else:
            self._document.insert_entry(NODES_PATH, node_id, props)

    # links as written in the document

    def _document_links(self) -> list[Link]:
        links = self._document.get(LINKS_PATH)
        if not isinstance(links, list):
            return []
        classified = []
        dummy_ordinal = 1
        for index, raw in enumerate(links):
            link = classify_link(raw, index, dummy_ordinal)
            if isinstance(link, DummyLink):
                dummy_ordinal += 1
            classified.append(link)
        return classified

    @staticmethod
    def _is_well_formed(link: Link) -> bool:
        return all(endpoint.node for endpoint in link.endpoints)

    def _remove_links_of(self, node_id: str) -> None:
        doomed = [
            link
            for link in self._document_links()
            if any(endpoint.node == node_id for endpoint in link.endpoints)
        ]
        for link in sorted(doomed, key=lambda link: link.index, reverse=True):
            self._document.remove_item(LINKS_PATH, link.index)
            self._result.removed_links.append(link_key(link))

    def _rewrite_link_endpoints(self, old: str, new: str) -> None:
        for index in range(self._document.length(LINKS_PATH)):
            path = LINKS_PATH + (index,)
            raw = self._document.get(path)
            if not isinstance(raw, dict):
                continue
            endpoints = raw.get("endpoints")
            if isinstance(endpoints, list):
                for position, value in enumerate(endpoints):
                    self._rewrite_endpoint(
                        path + ("endpoints", position), value, old, new
                    )
            if "endpoint" in raw:
                self._rewrite_endpoint(path + ("endpoint",), raw["endpoint"], old, new)

    def _rewrite_endpoint(self, path: tuple, value: Any, old: str, new: str) -> None:
        if isinstance(value, dict):
            if str(value.get("node")) == old:
                self._document.set_scalar(path + ("node",), new)
            return
        endpoint = split_endpoint(value)
        if endpoint.node != old:
            return
        renamed = f"{new}:{endpoint.interface}" if endpoint.interface else new
        self._document.set_scalar(path, renamed)

    # links

    def _mutate_links(self, elements: list[dict[str, Any]], plan: _Plan) -> None:
        desired: dict[str, _EdgeSpec] = {}
        for element in elements:
            if not is_edge_element(element):
                continue
            spec = _edge_spec(element_data(element), plan.aliases)
            if spec is not None:
                desired.setdefault(spec.key, spec)

        removals = [
            link
            for link in self._document_links()
            if self._is_well_formed(link) and link_key(link) not in desired
        ]
        for link in sorted(removals, key=lambda link: link.index, reverse=True):
            self._document.remove_item(LINKS_PATH, link.index)
            self._result.removed_links.append(link_key(link))
            _LOGGER.debug(f"Removed link {link_key(link)}")

        existing: dict[str, Link] = {}
        for link in self._document_links():
            existing.setdefault(link_key(link), link)
        for key, spec in desired.items():
            link = existing.get(key)
            if link is None:
                self._append_link(spec)
                self._result.added_links.append(key)
                _LOGGER.debug(f"Added link {key}")
            elif self._update_link(link, spec):
                self._result.updated_links.append(key)

    def _new_link(self, spec: _EdgeSpec) -> dict[str, Any]:
        extra = spec.extra
        if spec.link_type is None:
            entry: dict[str, Any] = {
                "endpoints": [str(spec.source), str(spec.target)]
            }
        else:
            endpoint: dict[str, Any] = {"node": spec.source.node}
            if spec.source.interface:
                endpoint["interface"] = spec.source.interface
            if extra.get("extMac"):
                endpoint["mac"] = extra["extMac"]
            entry = {"type": spec.link_type.value, "endpoint": endpoint}
            entry.update(self._mandated_fields(spec))
        if not is_empty(extra.get("extMtu")):
            entry["mtu"] = _link_value("mtu", extra["extMtu"])
        return entry

    @staticmethod
    def _mandated_fields(spec: _EdgeSpec) -> dict[str, Any]:
        extra = spec.extra
        _, _, suffix = spec.special_id.partition(":")
        fields: dict[str, Any] = {}
        if spec.link_type in HOSTY_TYPES:
            host_interface = extra.get("extHostInterface") or suffix
            if host_interface:
                fields["host-interface"] = host_interface
            if spec.link_type == LinkType.MACVLAN and extra.get("extMode"):
                fields["mode"] = extra["extMode"]
        elif spec.link_type in VX_TYPES:
            parts = (suffix.split("/") + ["", "", "", ""])[:4]
            values = {
                "remote": extra.get("extRemote") or parts[0],
                "vni": extra.get("extVni") or parts[1],
                "dst-port": extra.get("extDstPort") or parts[2],
                "src-port": extra.get("extSrcPort") or parts[3],
            }
            for key, value in values.items():
                if not is_empty(value):
                    fields[key] = _link_value(key, value)
        return fields

    def _append_link(self, spec: _EdgeSpec) -> None:
        entry = self._new_link(spec)
        self._ensure_topology()
        if not self._document.has(LINKS_PATH):
            self._document.insert_entry(TOPOLOGY_PATH, "links", [entry])
        else:
            self._document.append_item(LINKS_PATH, entry)

    def _update_link(self, link: Link, spec: _EdgeSpec) -> bool:
        path = LINKS_PATH + (link.index,)
        extra = spec.extra
        changed = False
        if "extMtu" in extra:
            changed |= self._sync_link_field(path, "mtu", extra["extMtu"])
        if isinstance(link, VethLink):
            return changed
        if link.yaml_format == LinkFormat.EXTENDED:
            for ext_key, key in LINK_EXT_FIELDS:
                if ext_key in extra:
                    changed |= self._sync_link_field(path, key, extra[ext_key])
        elif link.link_type in HOSTY_TYPES:
            changed |= self._sync_short_host_interface(link, path, extra)
        return changed

    def _sync_short_host_interface(
        self, link: Link, path: tuple, extra: dict[str, Any]
    ) -> bool:
        """Rewrite the `host:<if>` side of a short-form link."""
        host_interface = extra.get("extHostInterface")
        if is_empty(host_interface) or _same(link.host_interface, host_interface):
            return False
        position = 1 - link.endpoint_position
        if not self._document.has(path + ("endpoints", position)):
            return False
        self._document.set_scalar(
            path + ("endpoints", position), f"{link.link_type.value}:{host_interface}"
        )
        return True

    def _sync_link_field(self, path: tuple, key: str, value: Any) -> bool:
        raw = self._document.get(path)
        raw = raw if isinstance(raw, dict) else {}
        present = self._document.has(path + (key,))
        if is_empty(value):
            if present and key in OPTIONAL_LINK_FIELDS and not is_empty(raw.get(key)):
                self._document.delete_key(path, key)
                return True
            return False
        if present and _same(raw.get(key), value):
            return False
        new = _link_value(key, value)
        if present:
            self._document.set_scalar(path + (key,), new)
        else:
            self._document.insert_entry(path, key, new)
        return True

    # scalars

    def _mutate_scalars(self, plan: _Plan) -> None:
        inserted = set(plan.inserted)
        for node_id in plan.desired:
            if node_id in inserted or node_id not in plan.real:
                continue
            if self._update_node(node_id, plan.desired[node_id]):
                self._result.updated_nodes.append(node_id)

    def _update_node(self, node_id: str, data: dict[str, Any]) -> bool:
        path = NODES_PATH + (node_id,)
        if not self._document.has(path):
            return False
        extra = data.get("extraData") if isinstance(data.get("extraData"), dict) else {}
        changed = False
        for key in NODE_FIELDS:
            if key not in extra:
                continue
            value = extra[key]
            raw = self._document.get(path)
            raw = raw if isinstance(raw, dict) else {}
            present = self._document.has(path + (key,))
            if is_empty(value):
                if present and not is_empty(raw.get(key)):
                    self._document.delete_key(path, key)
                    changed = True
                continue
            if key in INHERITED_PROPERTIES:
                defaults, kinds = self._inheritance()
                current = resolve_property(raw, key, defaults, kinds)
            else:
                current = raw.get(key)
            if current is not None and _same(current, value):
                continue
            if present:
                self._document.set_scalar(path + (key,), value)
            else:
                self._document.insert_entry(path, key, value)
            changed = True
        return changed
