"""
Delimiter compilation for kcl.

Turns a user supplied delimiter such as ``\\t`` or ``--\\x00--`` into the
literal bytes the tokenizer splits on. Understood escapes are ``\\t``,
``\\n``, ``\\r`` and ``\\xHH``.
"""

import string

from ..utils.errors import InvalidEscapeError, EmptyDelimiterError


_SIMPLE_ESCAPES = {
    "t": b"\t",
    "n": b"\n",
    "r": b"\r",
}

_HEX_DIGITS = frozenset(string.hexdigits)


def compile_delimiter(spec: str) -> bytes:
    """
    Compile a delimiter specification into bytes.

    Args:
        spec: Delimiter text with optional escape sequences

    Returns:
        Non-empty delimiter bytes

    Raises:
        InvalidEscapeError: On a trailing backslash, an unknown escape or a
            malformed ``\\x`` sequence
        EmptyDelimiterError: If the specification is empty
    """
    out = bytearray()
    i = 0
    n = len(spec)

    while i < n:
        ch = spec[i]
        i += 1

        if ch != "\\":
            out += ch.encode("utf-8")
            continue

        if i >= n:
            raise InvalidEscapeError(
                "invalid slash escape at end of delim string", spec=spec
            )

        selector = spec[i]
        i += 1

        if selector in _SIMPLE_ESCAPES:
            out += _SIMPLE_ESCAPES[selector]
        elif selector == "x":
            if n - i < 2:
                raise InvalidEscapeError(
                    "invalid non-terminated hex escape sequence at end of delim string",
                    spec=spec
                )
            digits = spec[i:i + 2]
            if not all(d in _HEX_DIGITS for d in digits):
                raise InvalidEscapeError(
                    f"unable to parse hex escape sequence {digits!r}", spec=spec
                )
            out.append(int(digits, 16))
            i += 2
        else:
            sequence = "\\" + selector
            raise InvalidEscapeError(
                f"unknown slash escape sequence {sequence!r}", spec=spec
            )

    if not out:
        raise EmptyDelimiterError("delimiter must not be empty", spec=spec)

    return bytes(out)


__all__ = ['compile_delimiter']
