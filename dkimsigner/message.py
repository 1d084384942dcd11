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

__all__ = [
    'Message',
    'MessageFormatError',
    'rfc822_parse',
    ]


class MessageFormatError(Exception):
    """RFC822 message format error."""
    pass


def _is_field_name(name):
    return len(name) > 0 and all(0x21 <= c <= 0x7e for c in bytearray(name))


class Message(object):
    """A parsed RFC822 message.

    headers is a list of [name, value] pairs in message order.  The value
    is everything after the colon, with folding kept and without the
    final line terminator.  body is the raw body bytes.
    """

    def __init__(self, headers, body, envelope=None):
        self.headers = headers
        self.body = body
        #: An mbox "From " line found before the header fields.
        self.envelope = envelope

    def get_all(self, name):
        """Return every value of a header field, in message order.

        >>> m = rfc822_parse(b'To: a\\r\\nto: b\\r\\n\\r\\n')
        >>> m.get_all(b'TO')
        [b' a', b' b']
        """
        name = name.lower()
        return [v for k, v in self.headers if k.lower() == name]

    def __contains__(self, name):
        return len(self.get_all(name)) > 0

    def as_bytes(self, extra_header=b""):
        """Render the message, appending extra_header after the last field.

        extra_header must already carry its CRLF terminator.
        """
        lines = []
        if self.envelope is not None:
            lines.append(self.envelope + b"\r\n")
        for name, value in self.headers:
            lines.append(name + b":" + value + b"\r\n")
        lines.append(extra_header)
        lines.append(b"\r\n")
        lines.append(self.body)
        return b"".join(lines)


def rfc822_parse(message):
    """Parse a message in RFC822 format.

    @param message: The message in RFC822 format. Either CRLF or LF is an
    accepted line separator.
    @return: a L{Message}.  The body is returned exactly as given.
    @raise MessageFormatError: when there is no blank line ending the
    header, a header line is malformed, or there are no header fields.

    >>> m = rfc822_parse(b'Subject: a\\r\\n b\\r\\n\\r\\nbody\\n')
    >>> m.headers, m.body
    ([[b'Subject', b' a\\r\\n b']], b'body\\n')
    """
    if not isinstance(message, bytes):
        raise MessageFormatError("Message must be bytes, not %s"
            % type(message).__name__)
    headers = []
    envelope = None
    pos = 0
    while True:
        end = message.find(b"\n", pos)
        if end == -1:
            raise MessageFormatError(
                "Missing blank line between header and body")
        line = message[pos:end]
        if line.endswith(b"\r"):
            line = line[:-1]
        pos = end + 1
        if len(line) == 0:
            # End of headers.
            break
        if line[:1] in (b"\x09", b"\x20"):
            if not headers:
                raise MessageFormatError(
                    "Continuation line before first header field: %r" % line)
            headers[-1][1] += b"\r\n" + line
            continue
        i = line.find(b":")
        if i != -1 and _is_field_name(line[:i]):
            headers.append([line[:i], line[i+1:]])
        elif line.startswith(b"From ") and not headers and envelope is None:
            envelope = line
        else:
            raise MessageFormatError(
                "Unexpected characters in RFC822 header: %r" % line)
    if not headers:
        raise MessageFormatError("No header fields found")
    return Message(headers, message[pos:], envelope)
