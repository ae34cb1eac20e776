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
Editable YAML document.

The document keeps the original text and a node tree composed by PyYAML.
Every node of the tree carries start and end marks, so mutations are
applied as splices of the original text and everything outside of the
changed region (comments, key order, quoting, blank lines) is kept
byte for byte. The tree is recomposed after each splice.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Iterator, Sequence, Union

import yaml
from yaml.composer import Composer
from yaml.constructor import SafeConstructor
from yaml.events import AliasEvent
from yaml.nodes import MappingNode, Node, ScalarNode, SequenceNode
from yaml.parser import Parser
from yaml.reader import Reader
from yaml.resolver import Resolver
from yaml.scanner import Scanner

from .exceptions import ElementAlreadyExists, InvalidDocument, PathNotFound

_LOGGER = logging.getLogger(__name__)

PathItem = Union[str, int]
Path = Sequence[PathItem]

_DEFAULT_INDENT = 2
_FLOW_SAFE = re.compile(r"^[A-Za-z0-9_./@+-][A-Za-z0-9_./@+ -]*$")


class _AliasNode(Node):
    """Stand-in for an alias, positioned where the alias is written."""

    id = "alias"

    def __init__(self, anchor: str, start_mark, end_mark) -> None:
        super().__init__("alias", anchor, start_mark, end_mark)


class _SpanComposer(Composer):
    def compose_node(self, parent, index):
        # PyYAML returns the anchored node for an alias, whose marks point
        # at the anchor, so aliases get their own positioned node here.
        if self.check_event(AliasEvent):
            event = self.get_event()
            return _AliasNode(event.anchor, event.start_mark, event.end_mark)
        return super().compose_node(parent, index)


class _SpanLoader(Reader, Scanner, Parser, _SpanComposer, SafeConstructor, Resolver):
    def __init__(self, stream: str) -> None:
        Reader.__init__(self, stream)
        Scanner.__init__(self)
        Parser.__init__(self)
        _SpanComposer.__init__(self)
        SafeConstructor.__init__(self)
        Resolver.__init__(self)


def _compose(text: str) -> Node | None:
    loader = _SpanLoader(text)
    try:
        return loader.get_single_node()
    finally:
        loader.dispose()


def _is_inline(value: Any) -> bool:
    if isinstance(value, dict):
        return not value
    if isinstance(value, list):
        return all(not isinstance(item, (dict, list)) for item in value)
    return True


def render_scalar(value: Any, style: str | None = None) -> str:
    """
    Render a single scalar the way PyYAML would emit it.

    :param value: The scalar value.
    :param style: `"`, `'` or None for plain style.
    :returns: The scalar text without trailing document markers.
    """
    if style not in ('"', "'"):
        style = None
    if not isinstance(value, str):
        style = None
    out = yaml.safe_dump(value, default_style=style, width=4096, allow_unicode=True)
    if out.endswith("\n...\n"):
        out = out[:-5]
    return out.rstrip("\n")


class BlockRenderer:
    def __init__(self, step: int = _DEFAULT_INDENT) -> None:
        """
        Renders new values as YAML text that fits into an existing document.

        Scalars and flat collections are written inline, everything else as
        an indented block. Strings inside inline lists are double-quoted.

        :param step: Number of spaces per nesting level.
        """
        self.step = step

    def key(self, key: PathItem) -> str:
        return render_scalar(str(key))

    def flow_item(self, value: Any) -> str:
        if isinstance(value, str):
            if _FLOW_SAFE.match(value) and render_scalar(value) == value:
                return value
            return render_scalar(value, '"')
        return self.inline(value)

    def inline(self, value: Any) -> str:
        if isinstance(value, dict):
            items = ", ".join(
                f"{self.key(key)}: {self.flow_item(item)}"
                for key, item in value.items()
            )
            return "{" + items + "}"
        if isinstance(value, list):
            items = ", ".join(self._list_item(item) for item in value)
            return "[" + items + "]"
        return render_scalar(value)

    def _list_item(self, value: Any) -> str:
        if isinstance(value, str):
            return render_scalar(value, '"')
        return self.flow_item(value)

    def entry(self, key: PathItem, value: Any, indent: int) -> list[str]:
        """Render `key: value` at the given indentation."""
        pad = " " * indent
        if not _is_inline(value):
            return [f"{pad}{self.key(key)}:"] + self.block(value, indent + self.step)
        return [f"{pad}{self.key(key)}: {self.inline(value)}"]

    def block(self, value: Any, indent: int) -> list[str]:
        if isinstance(value, dict):
            lines: list[str] = []
            for key, item in value.items():
                lines.extend(self.entry(key, item, indent))
            return lines
        if isinstance(value, list):
            lines = []
            for item in value:
                lines.extend(self.item(item, indent))
            return lines
        return [" " * indent + self.inline(value)]

    def item(self, value: Any, indent: int) -> list[str]:
        """Render a `- value` sequence item at the given indentation."""
        pad = " " * indent
        if _is_inline(value):
            return [f"{pad}- {self.inline(value)}"]
        inner = self.block(value, indent + 2)
        return [f"{pad}- {inner[0].lstrip()}"] + inner[1:]


class Document:
    """
    An editable, comment-preserving YAML document.

    Values are addressed by paths, tuples of mapping keys and sequence
    indices, e.g. ``("topology", "nodes", "srl1", "kind")``.
    """

    def __init__(self, text: str) -> None:
        self._text = text
        self._root: Node | None = None
        self._data: Any = None
        self._renderer = BlockRenderer()
        self._recompose()

    def __str__(self):
        return self._text

    def __repr__(self):
        return f"{self.__class__.__name__}({len(self._text)} chars)"

    @property
    def text(self) -> str:
        """The current text of the document."""
        return self._text

    @property
    def root(self) -> Node | None:
        return self._root

    def to_python(self) -> Any:
        """Return the document loaded as plain Python data."""
        return self._data

    def replace_text(self, text: str) -> None:
        """
        Replace the whole text, e.g. to roll back a failed batch of edits.

        :raises InvalidDocument: If the text is not valid YAML; the document
            is left unchanged in that case.
        """
        self._splice(0, len(self._text), text)

    def _recompose(self) -> None:
        try:
            self._root = _compose(self._text)
            self._data = yaml.safe_load(self._text)
        except yaml.YAMLError as exc:
            raise InvalidDocument(f"Invalid YAML document: {exc}") from exc
        self._renderer.step = self._detect_indent()

    def _detect_indent(self) -> int:
        for key_node, value_node in self._walk_pairs(self._root):
            if (
                isinstance(value_node, MappingNode)
                and not value_node.flow_style
                and value_node.value
            ):
                step = value_node.value[0][0].start_mark.column
                step -= key_node.start_mark.column
                if step > 0:
                    return step
        return _DEFAULT_INDENT

    def _walk_pairs(self, node: Node | None) -> Iterator[tuple[Node, Node]]:
        if isinstance(node, MappingNode):
            for key_node, value_node in node.value:
                yield key_node, value_node
                yield from self._walk_pairs(value_node)
        elif isinstance(node, SequenceNode):
            for item in node.value:
                yield from self._walk_pairs(item)

    # read access

    def get(self, path: Path, default: Any = None) -> Any:
        """
        Get a value from the loaded data.

        :param path: The path of the value.
        :param default: Returned when the path does not exist.
        :returns: The value at `path`, merge keys and aliases resolved.
        """
        current = self._data
        for item in path:
            if isinstance(current, dict) and item in current:
                current = current[item]
            elif (
                isinstance(current, list)
                and isinstance(item, int)
                and -len(current) <= item < len(current)
            ):
                current = current[item]
            else:
                return default
        return current

    def has(self, path: Path) -> bool:
        """Return True if the path is literally written in the document."""
        return self.node_at(path) is not None

    def node_at(self, path: Path) -> Node | None:
        """
        Get the composed node at the given path.

        :param path: The path of the node.
        :returns: The node, or None when the path is not written in the text.
        """
        node = self._root
        for item in path:
            if isinstance(node, MappingNode):
                pair = self._find_pair(node, item)
                if pair is None:
                    return None
                node = pair[2]
            elif isinstance(node, SequenceNode) and isinstance(item, int):
                if not -len(node.value) <= item < len(node.value):
                    return None
                node = node.value[item]
            else:
                return None
        return node

    def keys(self, path: Path = ()) -> list[str]:
        """Return the keys written in the mapping at `path`, in text order."""
        node = self.node_at(path)
        if not isinstance(node, MappingNode):
            return []
        return [key.value for key, _ in node.value if isinstance(key, ScalarNode)]

    def length(self, path: Path) -> int:
        node = self.node_at(path)
        if isinstance(node, (MappingNode, SequenceNode)):
            return len(node.value)
        return 0

    def is_mapping(self, path: Path) -> bool:
        return isinstance(self.node_at(path), MappingNode)

    def is_sequence(self, path: Path) -> bool:
        return isinstance(self.node_at(path), SequenceNode)

    @staticmethod
    def _find_pair(
        mapping: MappingNode, key: PathItem
    ) -> tuple[int, Node, Node] | None:
        for index, (key_node, value_node) in enumerate(mapping.value):
            if isinstance(key_node, ScalarNode) and key_node.value == str(key):
                return index, key_node, value_node
        return None

    def _require(self, path: Path) -> Node:
        node = self.node_at(path)
        if node is None:
            raise PathNotFound("/".join(str(item) for item in path))
        return node

    # text positions

    def _line_start(self, index: int) -> int:
        return self._text.rfind("\n", 0, index) + 1

    def _line_end(self, index: int) -> int:
        end = self._text.find("\n", index)
        return len(self._text) if end == -1 else end

    def _only_spaces_before(self, index: int) -> bool:
        return not self._text[self._line_start(index) : index].strip()

    def _content_end(self, node: Node) -> int:
        """Index right after the last character of the node's content."""
        if isinstance(node, MappingNode) and not node.flow_style:
            if not node.value:
                return node.start_mark.index
            key_node, value_node = node.value[-1]
            return max(self._content_end(key_node), self._content_end(value_node))
        if isinstance(node, SequenceNode) and not node.flow_style:
            if not node.value:
                return node.start_mark.index
            return self._content_end(node.value[-1])
        start = node.start_mark.index
        end = node.end_mark.index
        while end > start and self._text[end - 1] in " \t\r\n":
            end -= 1
        return end

    def _colon_after(self, key_node: Node) -> int:
        index = self._text.find(":", key_node.end_mark.index)
        if index == -1:
            raise InvalidDocument(f"No value indicator after key {key_node.value}")
        return index

    def _dash_before(self, item: Node) -> int:
        index = item.start_mark.index - 1
        while index >= 0 and self._text[index] in " \t\r\n":
            index -= 1
        if index >= 0 and self._text[index] == "-":
            return index
        return item.start_mark.index

    def _column(self, index: int) -> int:
        return index - self._line_start(index)

    # mutation

    def _splice(self, start: int, end: int, new: str) -> None:
        old_text = self._text
        self._text = old_text[:start] + new + old_text[end:]
        try:
            self._recompose()
        except InvalidDocument:
            self._text = old_text
            self._recompose()
            raise

    def _delete_lines(self, start: int, end: int) -> None:
        """Delete from the line holding `start` to the end of `end`'s line."""
        start = self._line_start(start)
        end = self._line_end(end)
        if end < len(self._text):
            end += 1
        elif start > 0:
            start -= 1
        self._splice(start, end, "")

    def set_scalar(self, path: Path, value: Any) -> None:
        """
        Overwrite a scalar, keeping its quoting style.

        :param path: The path of an existing value.
        :param value: The new value; collections are delegated to `set_value`.
        :raises PathNotFound: If nothing is written at `path`.
        """
        node = self._require(path)
        if not isinstance(node, ScalarNode) or not _is_scalar(value):
            self.set_value(path, value)
            return
        rendered = render_scalar(value, node.style)
        start = node.start_mark.index
        end = self._content_end(node)
        if start == end and node.value == "":
            rendered = " " + rendered
        self._splice(start, end, rendered)

    def set_value(self, path: Path, value: Any) -> None:
        """
        Replace the whole value at `path`, rendering it in block style where
        a block is needed.

        :param path: The path of an existing value.
        :param value: Any YAML-representable value.
        """
        if not path:
            lines = self._renderer.block(value, 0)
            self._splice(0, len(self._text), "\n".join(lines) + "\n")
            return
        parent = self._require(path[:-1])
        last = path[-1]
        if isinstance(parent, MappingNode):
            pair = self._find_pair(parent, last)
            if pair is None:
                raise PathNotFound("/".join(str(item) for item in path))
            _, key_node, value_node = pair
            start = self._colon_after(key_node) + 1
            end = max(start, self._content_end(value_node))
            if parent.flow_style or _is_inline(value):
                new = " " + self._renderer.inline(value)
            else:
                indent = key_node.start_mark.column + self._renderer.step
                new = "\n" + "\n".join(self._renderer.block(value, indent))
            self._splice(start, end, new)
        elif isinstance(parent, SequenceNode) and isinstance(last, int):
            item = parent.value[last]
            start = item.start_mark.index
            end = self._content_end(item)
            if parent.flow_style or _is_inline(value):
                new = self._renderer.inline(value)
            else:
                indent = self._column(self._dash_before(item)) + 2
                new = "\n".join(self._renderer.block(value, indent)).lstrip()
            self._splice(start, end, new)
        else:
            raise PathNotFound("/".join(str(item) for item in path))

    def insert_entry(
        self, path: Path, key: PathItem, value: Any, after: PathItem | None = None
    ) -> None:
        """
        Add a key to the mapping at `path`.

        :param path: The path of the mapping (an empty or null value is
            turned into a mapping).
        :param key: The new key.
        :param value: The value of the new key.
        :param after: Insert after this key instead of after the last one.
        :raises ElementAlreadyExists: If the key is already present.
        """
        node = self.node_at(path) if path else self._root
        if node is None or (isinstance(node, ScalarNode) and _is_null(node)):
            if path and self.node_at(path) is None:
                raise PathNotFound("/".join(str(item) for item in path))
            self.set_value(path, {key: value})
            return
        if not isinstance(node, MappingNode):
            raise InvalidDocument(f"Value at {list(path)} is not a mapping")
        if self._find_pair(node, key) is not None:
            raise ElementAlreadyExists(f"Key {key} already exists at {list(path)}")
        if not node.value:
            self.set_value(path, {key: value})
            return
        if node.flow_style:
            last_value = node.value[-1][1]
            position = self._content_end(last_value)
            new = f", {self._renderer.key(key)}: {self._renderer.flow_item(value)}"
            self._splice(position, position, new)
            return
        anchor = node.value[-1]
        if after is not None:
            found = self._find_pair(node, after)
            if found is not None:
                anchor = (found[1], found[2])
        indent = node.value[0][0].start_mark.column
        position = self._line_end(
            max(self._content_end(anchor[0]), self._content_end(anchor[1]))
        )
        lines = self._renderer.entry(key, value, indent)
        self._splice(position, position, "\n" + "\n".join(lines))

    def append_item(self, path: Path, value: Any) -> None:
        """
        Append an item to the sequence at `path`.

        :param path: The path of the sequence (an empty or null value is
            turned into a sequence).
        :param value: The new item.
        """
        node = self._require(path)
        if isinstance(node, ScalarNode) and _is_null(node):
            self.set_value(path, [value])
            return
        if not isinstance(node, SequenceNode):
            raise InvalidDocument(f"Value at {list(path)} is not a sequence")
        if not node.value:
            self.set_value(path, [value])
            return
        last = node.value[-1]
        if node.flow_style:
            position = self._content_end(last)
            self._splice(position, position, f", {self._renderer.flow_item(value)}")
            return
        indent = self._column(self._dash_before(node.value[0]))
        position = self._line_end(self._content_end(last))
        lines = self._renderer.item(value, indent)
        self._splice(position, position, "\n" + "\n".join(lines))

    def delete_key(self, path: Path, key: PathItem) -> bool:
        """
        Remove a key and its value from the mapping at `path`.

        :returns: False if the key was not present.
        """
        node = self.node_at(path) if path else self._root
        if not isinstance(node, MappingNode):
            return False
        pair = self._find_pair(node, key)
        if pair is None:
            return False
        index, key_node, value_node = pair
        if len(node.value) == 1 and path:
            self.set_value(path, {})
            return True
        if node.flow_style:
            self._delete_flow_member(node.value, index)
            return True
        start = key_node.start_mark.index
        end = max(self._content_end(key_node), self._content_end(value_node))
        if self._only_spaces_before(start):
            self._delete_lines(start, end)
        elif index + 1 < len(node.value):
            # first key of a "- key: value" sequence item
            self._splice(start, node.value[index + 1][0].start_mark.index, "")
        else:
            self._splice(start, end, "{}")
        return True

    def remove_item(self, path: Path, index: int) -> None:
        """Remove the item at `index` from the sequence at `path`."""
        node = self._require(path)
        if not isinstance(node, SequenceNode):
            raise InvalidDocument(f"Value at {list(path)} is not a sequence")
        if not -len(node.value) <= index < len(node.value):
            raise PathNotFound(f"{'/'.join(str(item) for item in path)}/{index}")
        index %= len(node.value)
        if len(node.value) == 1:
            self.set_value(path, [])
            return
        if node.flow_style:
            self._delete_flow_member([(item, item) for item in node.value], index)
            return
        item = node.value[index]
        self._delete_lines(self._dash_before(item), self._content_end(item))

    def _delete_flow_member(self, members: list[tuple[Node, Node]], index: int) -> None:
        first, last = members[index]
        if index + 1 < len(members):
            start = first.start_mark.index
            end = members[index + 1][0].start_mark.index
        else:
            start = self._content_end(members[index - 1][1])
            end = self._content_end(last)
        self._splice(start, end, "")

    def rename_key(self, path: Path, old: PathItem, new: PathItem) -> None:
        """
        Rename a key in place, keeping its position and value text.

        :raises PathNotFound: If `old` is not present.
        :raises ElementAlreadyExists: If `new` is already present.
        """
        node = self.node_at(path) if path else self._root
        if not isinstance(node, MappingNode):
            raise PathNotFound("/".join(str(item) for item in path))
        pair = self._find_pair(node, old)
        if pair is None:
            raise PathNotFound(f"{'/'.join(str(item) for item in path)}/{old}")
        if old == new:
            return
        if self._find_pair(node, new) is not None:
            raise ElementAlreadyExists(f"Key {new} already exists at {list(path)}")
        key_node = pair[1]
        rendered = render_scalar(str(new), key_node.style)
        self._splice(key_node.start_mark.index, key_node.end_mark.index, rendered)


def _is_scalar(value: Any) -> bool:
    return not isinstance(value, (dict, list))


def _is_null(node: ScalarNode) -> bool:
    return node.tag == "tag:yaml.org,2002:null"
