"""Exception hierarchy shared by the store, gateway and service layers."""

from __future__ import annotations

from typing import Optional


class InquiryError(Exception):
    """Base class for every error raised by the ``inquiry`` package."""


class NodeNotFoundError(InquiryError):
    """A referenced node (document) does not exist."""

    def __init__(self, node_id: str, collection: Optional[str] = None) -> None:
        self.node_id = node_id
        self.collection = collection
        where = f" in collection {collection!r}" if collection else ""
        super().__init__(f"Node not found: {node_id!r}{where}")


class GraphNotFoundError(InquiryError):
    """No graph is configured under the requested collection name."""


class GraphInitTimeoutError(InquiryError):
    """Resolving a graph's starting node exceeded the configured deadline."""


class InvalidTransitionError(InquiryError):
    """The requested child type is not permitted under the parent's type."""


class InvalidStateError(InquiryError):
    """A generation attempt was driven through an illegal state change."""


class InvalidRatingError(InquiryError, ValueError):
    """A rating outside the integer range 0–100."""


class AIRatingExistsError(InquiryError):
    """The node already carries its single AI rating."""


class TemplateNotFoundError(InquiryError):
    """No prompt template exists at the expected path."""


class ParseError(InquiryError):
    """A model response did not contain the required delimited block."""


class GatewayError(InquiryError):
    """Network failure or non-2xx response from an external service."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)
