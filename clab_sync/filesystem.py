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
"""Minimal file access used to load and store topology documents."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path

_LOGGER = logging.getLogger(__name__)


def normalize_path(path: str) -> str:
    """
    Normalize a path the same way on every platform.

    Backslashes become slashes, `.` segments are dropped and `..` segments
    remove their parent.
    """
    normalized = path.replace("\\", "/")
    is_absolute = normalized.startswith("/")
    stack: list[str] = []
    for part in normalized.split("/"):
        if not part or part == ".":
            continue
        if part == "..":
            if stack:
                stack.pop()
            continue
        stack.append(part)
    result = ("/" if is_absolute else "") + "/".join(stack)
    return result or ("/" if is_absolute else ".")


class FileSystemAdapter(ABC):
    """The file operations the engine needs, and nothing more."""

    @abstractmethod
    def read_file(self, path: str) -> str:
        """
        Read a whole file.

        :raises FileNotFoundError: If the file does not exist.
        """

    @abstractmethod
    def write_file(self, path: str, content: str) -> None:
        pass

    @abstractmethod
    def unlink(self, path: str) -> None:
        """Delete a file; deleting a missing file is not an error."""

    @abstractmethod
    def rename(self, old_path: str, new_path: str) -> None:
        pass

    @abstractmethod
    def exists(self, path: str) -> bool:
        pass

    def dirname(self, path: str) -> str:
        normalized = normalize_path(path)
        if normalized in ("/", "."):
            return "."
        head, sep, _ = normalized.rpartition("/")
        if not sep:
            return "."
        return head or "/"

    def basename(self, path: str) -> str:
        normalized = normalize_path(path)
        if normalized in ("/", "."):
            return ""
        return normalized.rpartition("/")[2]

    def join(self, *segments: str) -> str:
        parts = [segment for segment in segments if segment]
        if not parts:
            return "."
        normalized = normalize_path("/".join(parts))
        if normalized.startswith("./"):
            return normalized[2:]
        return normalized


class InMemoryFileSystem(FileSystemAdapter):
    def __init__(self, files: dict[str, str] | None = None) -> None:
        """
        A file system kept in a dictionary, for standalone hosts and tests.

        :param files: Initial file contents keyed by path.
        """
        self._files: dict[str, str] = {}
        for path, content in (files or {}).items():
            self._files[normalize_path(path)] = content

    def __repr__(self):
        return f"{self.__class__.__name__}({sorted(self._files)})"

    def read_file(self, path: str) -> str:
        key = normalize_path(path)
        if key not in self._files:
            raise FileNotFoundError(f"No such file: {path}")
        return self._files[key]

    def write_file(self, path: str, content: str) -> None:
        self._files[normalize_path(path)] = content

    def unlink(self, path: str) -> None:
        self._files.pop(normalize_path(path), None)

    def rename(self, old_path: str, new_path: str) -> None:
        source = normalize_path(old_path)
        if source not in self._files:
            raise FileNotFoundError(f"No such file: {old_path}")
        self._files[normalize_path(new_path)] = self._files.pop(source)

    def exists(self, path: str) -> bool:
        return normalize_path(path) in self._files


class LocalFileSystem(FileSystemAdapter):
    """Files on the local disk."""

    def read_file(self, path: str) -> str:
        return Path(path).read_text(encoding="utf-8")

    def write_file(self, path: str, content: str) -> None:
        Path(path).write_text(content, encoding="utf-8")
        _LOGGER.debug(f"Wrote {len(content)} characters to {path}")

    def unlink(self, path: str) -> None:
        Path(path).unlink(missing_ok=True)

    def rename(self, old_path: str, new_path: str) -> None:
        Path(old_path).replace(new_path)

    def exists(self, path: str) -> bool:
        return Path(path).is_file()
