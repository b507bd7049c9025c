"""
Diagram Text Transcoder
=======================

URL-safe text encoding used by PlantUML: raw deflate followed by a base64
variant over the alphabet ``0-9A-Za-z-_``. Tokens prefixed with ``~h`` carry
the text as plain hex, tokens prefixed with ``~1`` use the default encoding.
"""

from typing import Dict
import binascii
import zlib


ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz-_"

_DECODE_TABLE: Dict[str, int] = {char: value for value, char in enumerate(ALPHABET)}

HEX_PREFIX = "~h"
DEFAULT_PREFIX = "~1"


class CodecError(Exception):
    """Exception raised when a token cannot be transcoded."""

    pass


def _encode3bytes(b1: int, b2: int, b3: int) -> str:
    """Encode 3 bytes into 4 alphabet characters."""
    c1 = b1 >> 2
    c2 = ((b1 & 0x3) << 4) | (b2 >> 4)
    c3 = ((b2 & 0xF) << 2) | (b3 >> 6)
    c4 = b3 & 0x3F
    return ALPHABET[c1] + ALPHABET[c2 & 0x3F] + ALPHABET[c3 & 0x3F] + ALPHABET[c4]


def _encode_bytes(data: bytes) -> str:
    result = []
    for i in range(0, len(data), 3):
        if i + 2 < len(data):
            result.append(_encode3bytes(data[i], data[i + 1], data[i + 2]))
        elif i + 1 < len(data):
            result.append(_encode3bytes(data[i], data[i + 1], 0))
        else:
            result.append(_encode3bytes(data[i], 0, 0))
    return "".join(result)


def _decode_string(token: str) -> bytes:
    try:
        values = [_DECODE_TABLE[char] for char in token]
    except KeyError as e:
        raise CodecError(f"Invalid character in token: {e.args[0]!r}") from e

    # Trailing groups are zero padded when encoded
    values.extend([0] * (-len(values) % 4))

    data = bytearray()
    for i in range(0, len(values), 4):
        c1, c2, c3, c4 = values[i : i + 4]
        data.append(((c1 << 2) | (c2 >> 4)) & 0xFF)
        data.append(((c2 << 4) | (c3 >> 2)) & 0xFF)
        data.append(((c3 << 6) | c4) & 0xFF)
    return bytes(data)


class Transcoder:
    """Compresses diagram text into URL tokens and back."""

    def encode(self, text: str) -> str:
        compressor = zlib.compressobj(9, zlib.DEFLATED, -zlib.MAX_WBITS)
        data = compressor.compress(text.encode("utf-8")) + compressor.flush()
        return _encode_bytes(data)

    def decode(self, token: str) -> str:
        """
        Decode a URL token back into diagram text.

        Raises:
            CodecError: if the token is not a valid compressed diagram
        """
        token = token.strip()
        if token.startswith(HEX_PREFIX):
            return self._decode_hex(token[len(HEX_PREFIX) :])
        if token.startswith(DEFAULT_PREFIX):
            token = token[len(DEFAULT_PREFIX) :]

        data = _decode_string(token)
        # zero padding leaves trailing garbage after the final deflate block
        decompressor = zlib.decompressobj(-zlib.MAX_WBITS)
        try:
            raw = decompressor.decompress(data)
        except zlib.error as e:
            raise CodecError(f"Token is not a compressed diagram: {e}") from e
        if not decompressor.eof:
            raise CodecError("Token is truncated")

        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CodecError(f"Decoded diagram is not UTF-8: {e}") from e

    def _decode_hex(self, token: str) -> str:
        try:
            return binascii.unhexlify(token).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise CodecError(f"Invalid hex token: {e}") from e


_default_transcoder = Transcoder()


def get_transcoder() -> Transcoder:
    """Get the shared transcoder instance."""
    return _default_transcoder
