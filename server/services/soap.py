from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional
from xml.etree import ElementTree
from xml.sax.saxutils import escape as xml_escape

import httpx

from services.errors import SoapFaultError, TransportError
from services.registry import Registry


log = logging.getLogger("sonoscue.soap")

SERVICE_URN = "urn:schemas-upnp-org:service:{service}:1"


@dataclass
class SoapResponse:
    status_code: int
    body: str
    headers: dict = field(default_factory=dict)


def arg_text(value: Any) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    if value is None:
        return ""
    return str(value)


def build_envelope(service: str, action: str, arguments: Mapping[str, Any]) -> str:
    ns = SERVICE_URN.format(service=service)
    body_parts = [f"<{k}>{xml_escape(arg_text(v))}</{k}>" for k, v in arguments.items()]
    return (
        "<?xml version=\"1.0\" encoding=\"utf-8\"?>"
        "<s:Envelope xmlns:s=\"http://schemas.xmlsoap.org/soap/envelope/\" "
        "s:encodingStyle=\"http://schemas.xmlsoap.org/soap/encoding/\">"
        "<s:Body>"
        f"<u:{action} xmlns:u=\"{ns}\">"
        + "".join(body_parts)
        + f"</u:{action}>"
        "</s:Body>"
        "</s:Envelope>"
    )


def parse_upnp_fault(xml_text: str) -> Optional[tuple[Optional[str], Optional[str]]]:
    """Return (errorCode, description) when the body is a SOAP fault, else None."""

    try:
        root = ElementTree.fromstring(xml_text)
    except ElementTree.ParseError:
        return None
    fault = root.find(".//{*}Fault")
    if fault is None:
        return None
    error_code = (root.findtext(".//{*}errorCode") or "").strip() or None
    error_desc = (root.findtext(".//{*}errorDescription") or "").strip() or None
    if error_desc is None:
        error_desc = (root.findtext(".//{*}faultstring") or "").strip() or None
    return error_code, error_desc


class SoapTransport:
    def __init__(
        self,
        *,
        registry: Registry,
        http_user_agent: str,
        control_timeout: float,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._registry = registry
        self._http_user_agent = http_user_agent
        self._control_timeout = float(control_timeout)
        self._transport = transport

    async def post(
        self,
        origin_url: str,
        endpoint: str,
        service: str,
        action: str,
        arguments: Mapping[str, Any],
    ) -> SoapResponse:
        target = f"{origin_url.rstrip('/')}{endpoint}"
        ns = SERVICE_URN.format(service=service)
        envelope = build_envelope(service, action, arguments)
        headers = {
            "Content-Type": "text/xml; charset=\"utf-8\"",
            "SOAPACTION": f'\"{ns}#{action}\"',
            "User-Agent": self._http_user_agent,
            "Connection": "close",
        }
        log.debug("SOAP %s.%s -> %s", service, action, target)
        try:
            async with httpx.AsyncClient(timeout=self._control_timeout, transport=self._transport) as client:
                resp = await client.post(target, content=envelope.encode("utf-8"), headers=headers)
        except httpx.RequestError as exc:
            raise TransportError(f"Sonos SOAP {service}.{action} to {origin_url} failed: {exc!r}") from exc

        fault = parse_upnp_fault(resp.text or "") if resp.status_code >= 400 else None
        if fault is not None:
            code, description = fault
            message = self._registry.fault_message(service, code)
            if message == "unknown error" and description:
                message = description
            log.debug("SOAP fault %s for %s.%s: %s", code, service, action, message)
            raise SoapFaultError(service, action, code, message)
        return SoapResponse(status_code=resp.status_code, body=resp.text, headers=dict(resp.headers))
