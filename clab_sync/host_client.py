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

import json
import logging
from typing import Any, NamedTuple
from uuid import uuid4

import httpx

from .configuration import get_configuration
from .exceptions import (
    APIError,
    HostError,
    InitializationError,
    ProtocolVersionMismatch,
)
from .host import (
    ACK,
    COMMAND,
    ERROR,
    GET_SNAPSHOT,
    PROTOCOL_VERSION,
    REJECT,
    SNAPSHOT,
)

_LOGGER = logging.getLogger(__name__)

_ENDPOINT = "topology-host"
_VERSION_ERROR = "Unsupported topology host protocol version"


def raise_for_status(response: httpx.Response):
    """
    Read 4xx/5xx responses before raising, so that the body is still
    available to the error handling.
    """
    if response.status_code // 100 in (4, 5):
        response.read()
    response.raise_for_status()


class HostSession(httpx.Client):
    _ERROR_PREFIX = {4: "Client error - ", 5: "Server error - "}

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._original_request = self.request
        self.request = self._request

    def _request(self, *args, **kwargs):
        """
        httpx.Client.request modified to raise an exception for HTTP status
        errors, carrying the error text sent by the host.

        :raises APIError: If the response has an HTTP status error.
        """
        try:
            response = self._original_request(*args, **kwargs)
            raise_for_status(response)
            return response
        except httpx.HTTPStatusError as error:
            try:
                error_detail = json.loads(error.response.text)["error"]
            except (json.JSONDecodeError, KeyError, TypeError):
                error_detail = error.response.text
            prefix = self._ERROR_PREFIX.get(error.response.status_code // 100, "")
            raise APIError(
                f"{prefix}{error_detail or error}",
                request=error.request,
                response=error.response,
            ) from None


def make_session(base_url: str, ssl_verify: bool | str = True, timeout=None):
    """
    Create an httpx client for a topology host.

    :param base_url: The URL of the host; requests are relative to it.
    :param ssl_verify: Whether to perform SSL verification, or a CA bundle.
    :param timeout: Request timeout in seconds.
    """
    return HostSession(
        base_url=base_url,
        verify=ssl_verify,
        follow_redirects=True,
        timeout=timeout,
        headers={"X-Client-UUID": str(uuid4())},
    )


class CommandResult(NamedTuple):
    """The outcome of a command sent to a topology host."""

    type: str
    revision: int | None = None
    snapshot: dict[str, Any] | None = None
    reason: str | None = None
    error: str | None = None

    @property
    def accepted(self) -> bool:
        return self.type == ACK

    @property
    def conflict(self) -> bool:
        return self.type == REJECT

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CommandResult:
        return cls(
            type=data.get("type", ""),
            revision=data.get("revision"),
            snapshot=data.get("snapshot"),
            reason=data.get("reason"),
            error=data.get("error"),
        )


class HostClient:
    """Client for a topology host reachable over HTTP."""

    def __init__(
        self,
        url: str | None = None,
        ssl_verify: bool | str = True,
        timeout: float | None = 30.0,
    ) -> None:
        """
        :param url: URL of the topology host. It's also possible to pass the
            URL via the ``CLAB_SYNC_URL`` environment variable or a
            ``.clabsyncrc`` file.
        :param ssl_verify: Path of a CA bundle, True to read
            ``CLAB_SYNC_VERIFY_CERT``, or False to disable verification.
        :param timeout: Request timeout in seconds.
        :raises InitializationError: If no URL is available or it is invalid.
        """
        url, ssl_verify = get_configuration(url, ssl_verify)
        if ssl_verify is False:
            _LOGGER.warning("SSL Verification disabled")
        if "://" not in url:
            url = f"http://{url}"
        self.url = url.rstrip("/") + "/"
        try:
            self._session = make_session(self.url, ssl_verify, timeout)
        except httpx.InvalidURL as exc:
            raise InitializationError(exc) from None
        self._request_count = 0

    def __repr__(self):
        return f"{self.__class__.__name__}({self.url!r})"

    def close(self) -> None:
        self._session.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def _next_request_id(self) -> str:
        self._request_count += 1
        return f"req-{self._request_count}"

    def _send(self, envelope: dict[str, Any]) -> dict[str, Any]:
        """
        Post an envelope to the host and check the reply envelope.

        :raises ProtocolVersionMismatch: If the host speaks another version.
        :raises HostError: If the host replies with an error.
        """
        response = self._session.post(_ENDPOINT, json=envelope)
        reply = response.json()
        if not isinstance(reply, dict):
            raise HostError("Invalid reply from topology host")
        if reply.get("type") == ERROR:
            message = str(reply.get("error") or "Unknown topology host error")
            if message.startswith(_VERSION_ERROR):
                raise ProtocolVersionMismatch(message)
            raise HostError(message)
        if reply.get("requestId") not in (None, envelope["requestId"]):
            _LOGGER.warning(
                f"Reply for {reply.get('requestId')} to request "
                f"{envelope['requestId']}"
            )
        return reply

    def get_snapshot(self) -> dict[str, Any]:
        """
        Fetch the current state of the topology.

        :returns: The snapshot.
        :raises HostError: If the host replies with an error.
        """
        reply = self._send(
            {
                "type": GET_SNAPSHOT,
                "protocolVersion": PROTOCOL_VERSION,
                "requestId": self._next_request_id(),
            }
        )
        if reply.get("type") != SNAPSHOT:
            raise HostError(f"Unexpected reply type {reply.get('type')}")
        return reply.get("snapshot") or {}

    def send_command(
        self, command: dict[str, Any], base_revision: int
    ) -> CommandResult:
        """
        Send a command to the host.

        :param command: The command, a mapping with a `command` name.
        :param base_revision: The revision the command was prepared against.
        :returns: The result; a conflict is a result, not an exception.
        :raises HostError: If the host replies with an error.
        """
        reply = self._send(
            {
                "type": COMMAND,
                "protocolVersion": PROTOCOL_VERSION,
                "requestId": self._next_request_id(),
                "command": command,
                "baseRevision": base_revision,
            }
        )
        result = CommandResult.from_dict(reply)
        if result.conflict:
            _LOGGER.warning(
                f"Command {command.get('command')} conflicts with revision "
                f"{result.revision}"
            )
        return result
