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

import httpx


class ClabSyncException(Exception):
    pass


class InitializationError(ClabSyncException):
    pass


class DocumentError(ClabSyncException):
    pass


class InvalidDocument(DocumentError, ValueError):
    pass


class PathNotFound(DocumentError, KeyError):
    pass


class ElementAlreadyExists(ClabSyncException, FileExistsError):
    pass


class ElementNotFound(ClabSyncException, KeyError):
    pass


class NodeNotFound(ElementNotFound):
    pass


class LinkNotFound(ElementNotFound):
    pass


class AnnotationNotFound(ElementNotFound):
    pass


class ReconcileError(ClabSyncException):
    MISSING_DOCUMENT = "missing-document"
    NODES_NOT_A_MAP = "nodes-not-a-map"

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class TopologyValidationError(ClabSyncException):
    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = errors


class InvalidCommand(ClabSyncException):
    pass


class HostError(ClabSyncException):
    pass


class ProtocolVersionMismatch(HostError):
    pass


class APIError(HostError, httpx.HTTPStatusError):
    pass
