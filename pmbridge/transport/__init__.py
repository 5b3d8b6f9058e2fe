"""
Transport collaborators for pmbridge adapters.

Transports perform the I/O and the retry policy; they raise
``TransportError`` for every failure and never classify it. Classification
happens once, in the adapter, through ``pmbridge.error_mapper``.
"""

from .graphql import GraphQLError, GraphQLTransport
from .http import HttpTransport, TransportError, decode_json, parse_retry_after

__all__ = [
    "GraphQLError",
    "GraphQLTransport",
    "HttpTransport",
    "TransportError",
    "decode_json",
    "parse_retry_after",
]
