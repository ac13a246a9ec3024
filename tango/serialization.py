"""Serializers for tango envelopes.

A serializer converts an envelope (an ordered sequence of values) to and from a
transmittable buffer. Serializers must round-trip booleans, strings, numbers, and nested
sequences. Sequences are always decoded as lists, even if they were encoded as tuples.

The default serializer uses `CBOR`_ through :mod:`cbor2`, which also supports binary
strings and mappings. :class:`JSONSerializer` trades binary support for a human-readable
wire format.

.. _CBOR: https://cbor.io/
"""

import abc
from collections.abc import Sequence
from typing import Any, Protocol

import cbor2
import orjson as json

# isort: unique-list
__all__ = [
    'CBORSerializer',
    'DEFAULT_SERIALIZER',
    'JSONSerializer',
    'SERIALIZERS',
    'Serializer',
    'get_serializer',
]


class Serializer(Protocol):
    """The serialization port."""

    @abc.abstractmethod
    def encode(self, envelope: Sequence[Any], /) -> bytes:
        """Encode an envelope.

        Raises:
            Exception: An implementation-specific error if a value is not serializable.
        """
        raise NotImplementedError

    @abc.abstractmethod
    def decode(self, buf: bytes, /) -> Any:
        """Decode a buffer produced by :meth:`encode`.

        Raises:
            Exception: An implementation-specific error if the buffer is malformed.
        """
        raise NotImplementedError


class CBORSerializer(Serializer):
    """Serialize envelopes as CBOR arrays.

    Raises:
        cbor2.CBOREncodeError: If a value is not serializable.
        cbor2.CBORDecodeError: If a buffer is not valid CBOR.
    """

    def encode(self, envelope: Sequence[Any], /) -> bytes:
        return cbor2.dumps(list(envelope))

    def decode(self, buf: bytes, /) -> Any:
        return cbor2.loads(buf)

    def __repr__(self, /) -> str:
        return f'{self.__class__.__name__}()'


class JSONSerializer(Serializer):
    """Serialize envelopes as JSON arrays (UTF-8 encoded).

    Raises:
        orjson.JSONEncodeError: If a value is not serializable.
        orjson.JSONDecodeError: If a buffer is not valid JSON.
    """

    def encode(self, envelope: Sequence[Any], /) -> bytes:
        return json.dumps(list(envelope))

    def decode(self, buf: bytes, /) -> Any:
        return json.loads(buf)

    def __repr__(self, /) -> str:
        return f'{self.__class__.__name__}()'


DEFAULT_SERIALIZER: Serializer = CBORSerializer()
SERIALIZERS: dict[str, Serializer] = {
    'cbor': DEFAULT_SERIALIZER,
    'json': JSONSerializer(),
}


def get_serializer(name: str, /) -> Serializer:
    """Look up a bundled serializer by name.

    Parameters:
        name: A case-insensitive key of :data:`SERIALIZERS`.

    Raises:
        ValueError: If no such serializer exists.

    Example:
        >>> get_serializer('JSON')
        JSONSerializer()
    """
    try:
        return SERIALIZERS[name.lower()]
    except KeyError as exc:
        choices = ', '.join(sorted(SERIALIZERS))
        raise ValueError(f'unknown serializer {name!r} (choices: {choices})') from exc
