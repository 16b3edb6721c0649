from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Union
from urllib.parse import urlparse
from xml.etree import ElementTree

from services.errors import (
    InvalidResponseError,
    MissingArgumentError,
    ProtocolMismatchError,
    UnexpectedArgumentError,
)
from services.registry import Registry
from services.soap import SERVICE_URN, SoapTransport


log = logging.getLogger("sonoscue")

SOAP_ENVELOPE_NS = "http://schemas.xmlsoap.org/soap/envelope/"
SONOS_PORT = 1400

ActionResult = Union[bool, str, dict]


@dataclass(frozen=True)
class DeviceRef:
    hostname: str
    port: int = SONOS_PORT

    @property
    def origin_url(self) -> str:
        return f"http://{self.hostname}:{self.port}"

    @classmethod
    def from_url(cls, url: str) -> "DeviceRef":
        parsed = urlparse(url)
        if not parsed.hostname:
            raise ValueError(f"Invalid player URL {url!r}")
        return cls(hostname=parsed.hostname, port=parsed.port or SONOS_PORT)


def service_name_from_endpoint(endpoint: str) -> str:
    # /<device>/<service>/Control or /<service>/Control
    parts = endpoint.split("/")
    if len(parts) < 2:
        return ""
    return parts[-2]


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _namespace(tag: str) -> str:
    if tag.startswith("{"):
        return tag[1:].split("}", 1)[0]
    return ""


class ActionDispatcher:
    def __init__(self, *, registry: Registry, transport: SoapTransport) -> None:
        self._registry = registry
        self._transport = transport

    @property
    def registry(self) -> Registry:
        return self._registry

    async def invoke(
        self,
        device: DeviceRef,
        endpoint: str,
        action: str,
        arguments: Mapping[str, Any],
    ) -> ActionResult:
        """Send one action and return True, the single output value or the output map."""

        template = self._registry.template(endpoint, action)
        for name in template.required_inputs:
            if name not in arguments:
                raise MissingArgumentError(action, name)
        unexpected = [name for name in arguments if name not in template.required_inputs]
        if unexpected:
            raise UnexpectedArgumentError(action, unexpected)

        service = service_name_from_endpoint(endpoint)
        response = await self._transport.post(device.origin_url, endpoint, service, action, arguments)
        if response.status_code != 200:
            log.warning("Sonos %s.%s returned HTTP %s (host=%s)", service, action, response.status_code, device.hostname)
            raise InvalidResponseError(
                f"{service}.{action} on {device.hostname}: HTTP status {response.status_code}"
            )
        if not response.body:
            raise InvalidResponseError(f"{service}.{action} on {device.hostname}: empty response body")

        try:
            root = ElementTree.fromstring(response.body)
        except ElementTree.ParseError as exc:
            raise InvalidResponseError(f"{service}.{action} on {device.hostname}: malformed XML ({exc})") from exc

        node = self._response_node(root, action)
        if node is None:
            raise InvalidResponseError(f"{service}.{action} on {device.hostname}: {action}Response is missing")
        expected_ns = SERVICE_URN.format(service=service)
        if _namespace(node.tag) != expected_ns:
            raise ProtocolMismatchError(
                f"{service}.{action} on {device.hostname}: unexpected namespace {_namespace(node.tag)!r}"
            )

        if not template.expected_outputs:
            return True

        values = {_local_name(child.tag): child.text or "" for child in node}
        result: dict[str, str] = {}
        for name in template.expected_outputs:
            if name not in values:
                raise InvalidResponseError(f"{service}.{action} on {device.hostname}: output {name} is missing")
            result[name] = values[name]
        if len(template.expected_outputs) == 1:
            return result[template.expected_outputs[0]]
        return result

    @staticmethod
    def _response_node(root: ElementTree.Element, action: str) -> ElementTree.Element | None:
        if root.tag != f"{{{SOAP_ENVELOPE_NS}}}Envelope":
            return None
        body = root.find(f"{{{SOAP_ENVELOPE_NS}}}Body")
        if body is None:
            return None
        for child in body:
            if _local_name(child.tag) == f"{action}Response":
                return child
        return None
