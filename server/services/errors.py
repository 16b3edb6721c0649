from __future__ import annotations

from typing import Optional


class SonosError(Exception):
    """Base class for every failure raised while talking to a Sonos household."""


class SchemaError(SonosError):
    """Endpoint/action pair is not in the action registry."""


class UnexpectedArgumentError(SchemaError):
    def __init__(self, action: str, arguments: list[str]) -> None:
        super().__init__(f"{action}: unexpected argument(s) {', '.join(arguments)}")
        self.action = action
        self.arguments = arguments


class MissingArgumentError(SonosError):
    def __init__(self, action: str, argument: str) -> None:
        super().__init__(f"{action}: required argument {argument} is missing")
        self.action = action
        self.argument = argument


class InvalidResponseError(SonosError):
    pass


class ProtocolMismatchError(SonosError):
    pass


class TransportError(SonosError):
    """Connectivity failure: refused, reset, timed out."""


class SoapFaultError(SonosError):
    """The player answered with a UPnP SOAP fault."""

    def __init__(self, service: str, action: str, code: Optional[str], message: str) -> None:
        detail = f"UPnPError {code}: {message}" if code else message
        super().__init__(f"Sonos SOAP {service}.{action} failed: {detail}")
        self.service = service
        self.action = action
        self.code = code
        self.message = message


class PlayerNotFoundError(SonosError):
    pass


class MalformedItemError(SonosError):
    pass


class ItemNotFoundError(SonosError, LookupError):
    pass
