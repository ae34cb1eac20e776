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

from __future__ import annotations

import copy
import json
import logging
from typing import TYPE_CHECKING, Any, Literal

from ..exceptions import AnnotationNotFound

if TYPE_CHECKING:
    from ..filesystem import FileSystemAdapter

    AnnotationKind = Literal[
        "freeTextAnnotations",
        "freeShapeAnnotations",
        "groupStyleAnnotations",
        "cloudNodeAnnotations",
        "nodeAnnotations",
    ]

_LOGGER = logging.getLogger(__name__)

FREE_TEXT = "freeTextAnnotations"
FREE_SHAPE = "freeShapeAnnotations"
GROUP_STYLE = "groupStyleAnnotations"
CLOUD_NODE = "cloudNodeAnnotations"
NODE = "nodeAnnotations"
ANNOTATION_KINDS = (FREE_TEXT, FREE_SHAPE, GROUP_STYLE, CLOUD_NODE, NODE)
ANNOTATIONS_SUFFIX = ".annotations.json"


class TopologyAnnotations:
    def __init__(self, data: dict[str, Any] | None = None) -> None:
        """
        Everything about a topology that is not stored in its YAML document:
        free text and shapes, group styles, cloud node and node placement.

        Each annotation is a mapping with at least an `id`. Unknown top-level
        keys of the annotations file are kept as they are.

        :param data: The content of an annotations file.
        """
        data = data if isinstance(data, dict) else {}
        self._lists: dict[str, list[dict[str, Any]]] = {}
        self._extra: dict[str, Any] = {}
        for key, value in data.items():
            if key in ANNOTATION_KINDS:
                if isinstance(value, list):
                    self._lists[key] = [
                        dict(item) for item in value if isinstance(item, dict)
                    ]
            else:
                self._extra[key] = value
        for kind in ANNOTATION_KINDS:
            self._lists.setdefault(kind, [])

    def __repr__(self):
        counts = ", ".join(
            f"{kind}={len(self._lists[kind])}" for kind in ANNOTATION_KINDS
        )
        return f"{self.__class__.__name__}({counts})"

    def __eq__(self, other):
        if not isinstance(other, TopologyAnnotations):
            return False
        return self.to_dict() == other.to_dict()

    @property
    def free_text(self) -> list[dict[str, Any]]:
        return self._lists[FREE_TEXT]

    @property
    def free_shapes(self) -> list[dict[str, Any]]:
        return self._lists[FREE_SHAPE]

    @property
    def group_styles(self) -> list[dict[str, Any]]:
        return self._lists[GROUP_STYLE]

    @property
    def cloud_nodes(self) -> list[dict[str, Any]]:
        return self._lists[CLOUD_NODE]

    @property
    def nodes(self) -> list[dict[str, Any]]:
        return self._lists[NODE]

    def to_dict(self) -> dict[str, Any]:
        data = {kind: copy.deepcopy(self._lists[kind]) for kind in ANNOTATION_KINDS}
        data.update(copy.deepcopy(self._extra))
        return data

    def copy(self) -> TopologyAnnotations:
        return TopologyAnnotations(self.to_dict())

    def is_empty(self) -> bool:
        return not self._extra and not any(self._lists.values())

    def get(self, kind: AnnotationKind, annotation_id: str) -> dict[str, Any]:
        """
        Get an annotation by ID.

        :raises AnnotationNotFound: If there is no such annotation.
        """
        for annotation in self._lists[kind]:
            if annotation.get("id") == annotation_id:
                return annotation
        raise AnnotationNotFound(annotation_id)

    def find(self, kind: AnnotationKind, annotation_id: str) -> dict[str, Any] | None:
        try:
            return self.get(kind, annotation_id)
        except AnnotationNotFound:
            return None

    def add_or_update(self, kind: AnnotationKind, annotation: dict[str, Any]) -> None:
        """
        Replace the annotation with the same ID, or append it.

        :param kind: The annotation list to modify.
        :param annotation: The annotation; it must have an `id`.
        """
        if not annotation.get("id"):
            raise ValueError("Annotations need an id.")
        items = self._lists[kind]
        for index, existing in enumerate(items):
            if existing.get("id") == annotation["id"]:
                items[index] = dict(annotation)
                return
        items.append(dict(annotation))

    def remove(self, kind: AnnotationKind, annotation_id: str) -> bool:
        """
        Remove an annotation by ID.

        :returns: False if there was no such annotation.
        """
        items = self._lists[kind]
        kept = [item for item in items if item.get("id") != annotation_id]
        self._lists[kind] = kept
        return len(kept) != len(items)

    def node(self, node_id: str) -> dict[str, Any] | None:
        return self.find(NODE, node_id)

    def rename_node(self, old_id: str, new_id: str) -> None:
        """Move the node annotation of a renamed node to its new ID."""
        annotation = self.node(old_id)
        if annotation is None:
            return
        self.remove(NODE, new_id)
        annotation["id"] = new_id

    def update_node(self, node_id: str, **fields: Any) -> None:
        """
        Set fields of a node annotation, creating it if needed.

        Fields given as None are removed from the annotation.
        """
        annotation = self.node(node_id)
        if annotation is None:
            annotation = {"id": node_id}
            self.nodes.append(annotation)
        for key, value in fields.items():
            if value is None:
                annotation.pop(key, None)
            else:
                annotation[key] = value


def annotations_path(yaml_path: str) -> str:
    """The annotations file that belongs to a topology file."""
    return f"{yaml_path}{ANNOTATIONS_SUFFIX}"


class AnnotationsManager:
    def __init__(self, fs: FileSystemAdapter) -> None:
        """
        Loads and stores the annotations file next to a topology document.

        :param fs: The file system to use.
        """
        self._fs = fs

    def load(self, yaml_path: str) -> TopologyAnnotations:
        """
        Load the annotations of a topology.

        A missing file or a file that is not valid JSON gives empty
        annotations.
        """
        path = annotations_path(yaml_path)
        try:
            content = self._fs.read_file(path)
        except FileNotFoundError:
            return TopologyAnnotations()
        try:
            data = json.loads(content)
        except ValueError as exc:
            _LOGGER.warning(f"Ignoring invalid annotations file {path}: {exc}")
            return TopologyAnnotations()
        return TopologyAnnotations(data)

    def save(self, yaml_path: str, annotations: TopologyAnnotations) -> bool:
        """
        Store annotations.

        Nothing is written when the stored content is already equal, and
        the file is deleted when the annotations are empty.

        :returns: True if the file was written or deleted.
        """
        path = annotations_path(yaml_path)
        if annotations.is_empty():
            existed = self._fs.exists(path)
            self._fs.unlink(path)
            return existed
        data = annotations.to_dict()
        try:
            current = json.loads(self._fs.read_file(path))
        except (FileNotFoundError, ValueError):
            current = None
        if current == data:
            _LOGGER.debug(f"Annotations in {path} unchanged, skipping write")
            return False
        self._fs.write_file(path, json.dumps(data, indent=2))
        _LOGGER.info(f"Saved annotations to {path}")
        return True
