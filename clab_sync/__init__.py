#
# clab-sync
# Python synchronization engine for containerlab topology documents
#
# This file is part of clab-sync
# Copyright (c) 2025, the clab-sync authors
# All rights reserved.
#

# flake8: noqa: F401

from .document import Document
from .exceptions import (
    ClabSyncException,
    InitializationError,
    LinkNotFound,
    NodeNotFound,
    ReconcileError,
)
from .filesystem import InMemoryFileSystem, LocalFileSystem
from .host import TopologyHost
from .host_client import HostClient
