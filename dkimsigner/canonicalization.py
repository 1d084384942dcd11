# This software is provided 'as-is', without any express or implied
# warranty.  In no event will the author be held liable for any damages
# arising from the use of this software.
#
# Permission is granted to anyone to use this software for any purpose,
# including commercial applications, and to alter it and redistribute it
# freely, subject to the following restrictions:
#
# 1. The origin of this software must not be misrepresented; you must not
#    claim that you wrote the original software. If you use this software
#    in a product, an acknowledgment in the product documentation would be
#    appreciated but is not required.
# 2. Altered source versions must be plainly marked as such, and must not be
#    misrepresented as being the original software.
# 3. This notice may not be removed or altered from any source distribution.
#
# Copyright (c) 2008 Greg Hewgill http://hewgill.com
#
# This has been modified from the original software.
# Copyright (c) 2011 William Grant <me@williamgrant.id.au>
#
# This has been modified from the original software.

__all__ = [
    'canonicalize_body',
    'canonicalize_header',
    'CanonicalizationPolicy',
    'InvalidCanonicalizationPolicyError',
    'Relaxed',
    'Simple',
    ]

CRLF = b"\r\n"
WSP = (0x20, 0x09)


class InvalidCanonicalizationPolicyError(Exception):
    """The c= value could not be parsed."""
    pass


def split_lines(body):
    """Split a body into lines.

    Either CRLF or a bare LF ends a line.  An unterminated final line is
    returned like any other.

    >>> split_lines(b'a\\r\\nb\\nc')
    [b'a', b'b', b'c']
    >>> split_lines(b'a\\r\\n')
    [b'a']
    """
    lines = body.split(b"\n")
    last = lines.pop()
    lines = [x[:-1] if x.endswith(b"\r") else x for x in lines]
    if last:
        lines.append(last)
    return lines


def compress_wsp(line, strip=False):
    """Reduce each run of SP/HTAB to a single SP and drop trailing WSP.

    With strip, leading WSP is dropped as well.

    >>> compress_wsp(b' a \\t b  ')
    b' a b'
    >>> compress_wsp(b' a \\t b  ', strip=True)
    b'a b'
    """
    out = bytearray()
    in_wsp = False
    for c in bytearray(line):
        if c in WSP:
            in_wsp = True
            continue
        if in_wsp and (out or not strip):
            out.append(0x20)
        in_wsp = False
        out.append(c)
    return bytes(out)


def strip_trailing_empty_lines(lines):
    while lines and not lines[-1]:
        lines.pop()
    return lines


class Simple:
    """Class that represents the "simple" canonicalization algorithm."""

    name = "simple"

    @staticmethod
    def canonicalize_header(name, value):
        # No changes to headers.
        return name + b":" + value

    @staticmethod
    def canonicalize_body(body):
        # Ignore all empty lines at the end of the message body.
        lines = strip_trailing_empty_lines(split_lines(body))
        return b"".join(x + CRLF for x in lines) or CRLF


class Relaxed:
    """Class that represents the "relaxed" canonicalization algorithm."""

    name = "relaxed"

    @staticmethod
    def canonicalize_header(name, value):
        # Convert all header field names to lowercase.
        # Unfold all header lines.
        # Compress WSP to single space.
        # Remove all WSP at the start or end of the field value (strip).
        unfolded = bytes(c for c in bytearray(value) if c not in (0x0d, 0x0a))
        return (compress_wsp(name, strip=True).lower() + b":"
                + compress_wsp(unfolded, strip=True))

    @staticmethod
    def canonicalize_body(body):
        # Compress WSP and remove all trailing WSP at end of lines.
        lines = [compress_wsp(x) for x in split_lines(body)]
        # Ignore all empty lines at the end of the message body.
        lines = strip_trailing_empty_lines(lines)
        return b"".join(x + CRLF for x in lines)


ALGORITHMS = dict((c.name, c) for c in (Simple, Relaxed))


def _algorithm(mode):
    try:
        return ALGORITHMS[mode]
    except KeyError:
        raise InvalidCanonicalizationPolicyError(mode)


def canonicalize_body(body, mode):
    """Return the canonical form of a message body.

    @param body: the raw body bytes
    @param mode: C{"simple"} or C{"relaxed"}
    """
    return _algorithm(mode).canonicalize_body(body)


def canonicalize_header(name, value, mode):
    """Return the canonical C{name:value} form of one header field.

    >>> canonicalize_header(b'Subject', b' Hello   fook', 'relaxed')
    b'subject:Hello fook'

    @param name: the field name as it appears in the message
    @param value: the raw field value following the colon
    @param mode: C{"simple"} or C{"relaxed"}
    """
    return _algorithm(mode).canonicalize_header(name, value)


class CanonicalizationPolicy:

    def __init__(self, header_algorithm, body_algorithm):
        self.header_algorithm = header_algorithm
        self.body_algorithm = body_algorithm

    @classmethod
    def from_c_value(cls, c):
        """Construct the canonicalization policy described by a c= value.

        May raise an C{InvalidCanonicalizationPolicyError} if the given
        value is invalid

        >>> CanonicalizationPolicy.from_c_value('relaxed').to_c_value()
        'relaxed/simple'

        @param c: c= value from a DKIM-Signature header field
        @return: a L{CanonicalizationPolicy}
        """
        if c is None:
            c = 'simple/simple'
        m = c.split('/')
        if len(m) not in (1, 2):
            raise InvalidCanonicalizationPolicyError(c)
        if len(m) == 1:
            m.append('simple')
        can_headers, can_body = m
        return cls(_algorithm(can_headers), _algorithm(can_body))

    def to_c_value(self):
        return '/'.join((self.header_algorithm.name, self.body_algorithm.name))

    def canonicalize_header(self, name, value):
        return self.header_algorithm.canonicalize_header(name, value)

    def canonicalize_body(self, body):
        return self.body_algorithm.canonicalize_body(body)
