"""Byte codecs for Lissabon GATT characteristic values.

``is_on`` is a single byte, ``brightness`` and ``temperature`` are unsigned
16-bit little-endian integers carried unscaled. Decoding never fails on a
length mismatch: a warning is logged and the bytes that are present are used,
missing high-order bytes read as zero.
"""

from __future__ import annotations

import logging

from lissabon.core.model import KIND_BRIGHTNESS, KIND_IS_ON, KIND_TEMPERATURE

LOGGER = logging.getLogger(__name__)

WIDTHS = {
    KIND_IS_ON: 1,
    KIND_BRIGHTNESS: 2,
    KIND_TEMPERATURE: 2,
}


def _check_length(data: bytes, expected: int, *, context: str) -> None:
    if len(data) != expected:
        LOGGER.warning(
            "Unexpected length %d for BLE read of %s characteristic (expected %d)",
            len(data),
            context,
            expected,
        )


def encode_is_on(value: bool) -> bytes:
    return bytes([1 if value else 0])


def decode_is_on(data: bytes, *, context: str = KIND_IS_ON) -> bool:
    _check_length(data, WIDTHS[KIND_IS_ON], context=context)
    return len(data) > 0 and data[0] != 0


def encode_u16le(value: int) -> bytes:
    value = int(value)
    return bytes([value & 0xFF, (value >> 8) & 0xFF])


def decode_u16le(data: bytes, *, context: str = "u16") -> int:
    _check_length(data, 2, context=context)
    low = data[0] if len(data) > 0 else 0
    high = data[1] if len(data) > 1 else 0
    return low | (high << 8)


def encode(kind: str, value: bool | int) -> bytes:
    if kind == KIND_IS_ON:
        return encode_is_on(bool(value))
    if kind in (KIND_BRIGHTNESS, KIND_TEMPERATURE):
        return encode_u16le(int(value))
    raise KeyError(kind)


def decode(kind: str, data: bytes) -> bool | int:
    data = bytes(data)
    if kind == KIND_IS_ON:
        return decode_is_on(data, context=kind)
    if kind in (KIND_BRIGHTNESS, KIND_TEMPERATURE):
        return decode_u16le(data, context=kind)
    raise KeyError(kind)
