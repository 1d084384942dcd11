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
# Copyright (c) 2016 Google, Inc.
# Contact: Brandon Long <blong@google.com>
#
# This has been modified from the original software.
# Copyright (c) 2016 Scott Kitterman <scott@kitterman.com>
#
# This has been modified from the original software.


import base64
import re
import time
from collections import namedtuple

from dkimsigner.canonicalization import (
    CanonicalizationPolicy,
    InvalidCanonicalizationPolicyError,
    )
from dkimsigner.crypto import (
    DigestTooLargeError,
    HASH_ALGORITHMS,
    load_private_key,
    RSASSA_PKCS1_v1_5_sign,
    UnparsableKeyError,
    )
from dkimsigner.message import (
    MessageFormatError,
    rfc822_parse,
    )
from dkimsigner.util import (
    get_default_logger,
    InvalidTagValueList,
    parse_tag_value,
    TagList,
    )

__all__ = [
    "DKIMException",
    "ConfigurationError",
    "CryptoError",
    "KeyFormatError",
    "ParseError",
    "Relaxed",
    "Simple",
    "DEFAULT_SIGN_HEADERS",
    "SIGNATURE_HEADER",
    "DKIMSigner",
    "SignatureResult",
    "SignatureTags",
    "SigningRequest",
    "sign",
]

Relaxed = 'relaxed'    # for clients passing dkimsigner.Relaxed
Simple = 'simple'      # for clients passing dkimsigner.Simple

SIGNATURE_HEADER = 'DKIM-Signature'

#: Header fields signed by default, in h= order.  Fields missing from a
#: message are skipped.  DKIM-Signature is always signed last.
DEFAULT_SIGN_HEADERS = (
    'From', 'Sender', 'Reply-To', 'To', 'Cc', 'Subject', 'Date',
    'Message-ID', 'In-Reply-To', 'References', 'MIME-Version',
    'Content-Type', 'Content-Transfer-Encoding',
)

#: The rfc4871 recommended header fields not to sign.
SHOULD_NOT_SIGN = (
    'return-path', 'received', 'comments', 'keywords', 'bcc', 'resent-bcc',
    'dkim-signature',
)

#: Tags that must be present and non-empty before signing.
MANDATORY_TAGS = ('v', 'a', 'c', 'd', 's', 'h')

#: Order of tags in the DKIM-Signature header field.
TAG_ORDER = ('v', 'a', 'c', 'd', 'i', 'l', 's', 't', 'x', 'h', 'bh', 'b')

RE_NAME = re.compile(r"[A-Za-z0-9](?:[A-Za-z0-9._-]*[A-Za-z0-9])?$")
RE_FIELD_NAME = re.compile(r"[\x21-\x39\x3b-\x7e]+$")
RE_BASE64 = re.compile(r"[0-9A-Za-z+/]+=*$")
RE_DECIMAL = re.compile(r"\d{1,76}$")


class DKIMException(Exception):
    """Base class for DKIM errors."""
    pass

class ConfigurationError(DKIMException):
    """Missing or invalid signing parameter."""
    pass

class KeyFormatError(DKIMException):
    """Key format error while parsing an RSA private key."""
    pass

class ParseError(DKIMException):
    """RFC822 message format error."""
    pass

class CryptoError(DKIMException):
    """Hashing or signing failed."""
    pass


def text(s):
    """Normalize bytes/str to str.

    >>> text(b'foo')
    'foo'
    >>> text('foo')
    'foo'
    """
    if s is None or isinstance(s, str):
        return s
    try:
        return s.decode('ascii')
    except UnicodeDecodeError:
        raise ConfigurationError("value is not ASCII: %r" % s)
    except AttributeError:
        raise ConfigurationError("value is not text: %r" % (s,))


class HashThrough(object):
    """Hash wrapper that remembers what was hashed."""

    def __init__(self, hasher):
        self.data = []
        self.hasher = hasher
        self.name = hasher.name

    def update(self, data):
        self.data.append(data)
        return self.hasher.update(data)

    def digest(self):
        return self.hasher.digest()

    def hashed(self):
        return b''.join(self.data)


def select_headers(headers, include_headers):
    """Select message header fields to be signed.

    Repeated fields are taken from the bottom up.  Names that do not
    appear (any more) in the message are skipped.

    >>> h = [(b'From',b'biz'),(b'Foo',b'bar'),(b'from',b'baz'),(b'Subject',b'boring')]
    >>> i = ['From','Subject','To','From']
    >>> [(n, v) for n, (k, v) in select_headers(h,i)]
    [('From', b'baz'), ('Subject', b'boring'), ('From', b'biz')]

    @return: a list of (name from include_headers, header field) pairs.
    """
    sign_headers = []
    lastindex = {}
    for name in include_headers:
        h = name.lower().encode('ascii')
        i = lastindex.get(h, len(headers))
        while i > 0:
            i -= 1
            if h == headers[i][0].lower():
                sign_headers.append((name, headers[i]))
                break
        lastindex[h] = i
    return sign_headers


def hash_headers(hasher, canon_policy, sign_headers, sigheader):
    """Update hash for signed message header fields.

    Every signed field is followed by CRLF.  The DKIM-Signature field
    comes last and is hashed with no trailing CRLF.
    """
    lines = [canon_policy.canonicalize_header(x, y) for x, y in sign_headers]
    lines.append(canon_policy.canonicalize_header(*sigheader))
    hasher.update(b"\r\n".join(lines))


_SigningRequest = namedtuple('SigningRequest', [
    'domain', 'selector', 'algorithm', 'canonicalize', 'include_headers',
    'identity', 'length', 'timestamp', 'signature_ttl',
], defaults=(
    'rsa-sha256', (Relaxed, Simple), DEFAULT_SIGN_HEADERS,
    None, False, None, None,
))


class SigningRequest(_SigningRequest):
    """The parameters of a DKIM signature.

    @param domain: the DKIM domain value for the signature (d=)
    @param selector: the DKIM selector value for the signature (s=)
    @param algorithm: the signing algorithm (a=, default rsa-sha256)
    @param canonicalize: (header, body) canonicalization algorithms, or a
    c= value (default ('relaxed', 'simple'))
    @param include_headers: header fields to sign, in h= order
    (default L{DEFAULT_SIGN_HEADERS})
    @param identity: the DKIM identity value for the signature (i=)
    @param length: true if the l= tag should be included
    @param timestamp: signing time for t= (default the time of signing)
    @param signature_ttl: seconds from t= until the signature expires (x=)
    """

    __slots__ = ()

    def __new__(cls, *args, **kwargs):
        self = super(SigningRequest, cls).__new__(cls, *args, **kwargs)
        canonicalize = self.canonicalize
        if isinstance(canonicalize, (str, bytes)):
            canonicalize = text(canonicalize).split('/')
        include_headers = self.include_headers
        if include_headers is None:
            include_headers = DEFAULT_SIGN_HEADERS
        elif isinstance(include_headers, (str, bytes)):
            raise ConfigurationError("include_headers must be a sequence")
        return self._replace(
            domain=text(self.domain),
            selector=text(self.selector),
            algorithm=text(self.algorithm),
            identity=text(self.identity),
            canonicalize=tuple(text(x) for x in canonicalize),
            include_headers=tuple(text(x) for x in include_headers))

    @classmethod
    def from_tags(cls, tags, **kwargs):
        """Build a request from DKIM-Signature tags.

        @param tags: a mapping of tag to value, or a Tag=Value list.
        v, a, c, d and s are required.  h, i, t and x are optional.  bh, b
        and l are computed while signing and may not be given.
        @param kwargs: further L{SigningRequest} parameters
        """
        if isinstance(tags, (str, bytes)):
            try:
                tags = parse_tag_value(text(tags))
            except InvalidTagValueList as e:
                raise ConfigurationError("invalid tag list: %s" % e)
        tags = dict((text(k), text(v)) for k, v in dict(tags).items())
        for tag in ('bh', 'b', 'l'):
            if tag in tags:
                raise ConfigurationError(
                    "%s= is computed when signing and must not be given" % tag)
        for tag in ('v', 'a', 'c', 'd', 's'):
            if not tags.get(tag):
                raise ConfigurationError("signature missing %s=" % tag)
        unknown = sorted(set(tags) - set(TAG_ORDER))
        if unknown:
            raise ConfigurationError("unsupported tags: %s" % ", ".join(unknown))
        if tags['v'] != '1':
            raise ConfigurationError("v= value is not 1 (%s)" % tags['v'])
        kwargs.update(
            domain=tags['d'], selector=tags['s'], algorithm=tags['a'],
            canonicalize=tags['c'], identity=tags.get('i'))
        if tags.get('h'):
            kwargs['include_headers'] = [
                x.strip() for x in tags['h'].split(':')
                if x.strip().lower() != SIGNATURE_HEADER.lower()]
        for tag in ('t', 'x'):
            if tag in tags and not RE_DECIMAL.match(tags[tag]):
                raise ConfigurationError(
                    "%s= value is not a decimal integer (%s)" % (tag, tags[tag]))
        if 't' in tags:
            kwargs['timestamp'] = int(tags['t'])
        if 'x' in tags:
            if 't' not in tags:
                raise ConfigurationError("x= requires t=")
            kwargs['signature_ttl'] = int(tags['x']) - int(tags['t'])
        return cls(**kwargs)

    @property
    def c_value(self):
        return '/'.join(self.canonicalize)

    def validate(self):
        """Check the request can produce a valid signature.

        @raise ConfigurationError: when it cannot.
        """
        names = [x.lower() for x in self.include_headers]
        # rfc4871 says FROM is required
        if 'from' not in names:
            raise ConfigurationError("The From header field MUST be signed")
        for x in self.include_headers:
            if x.lower() in SHOULD_NOT_SIGN:
                raise ConfigurationError(
                    "The %s header field SHOULD NOT be signed" % x)
        for name in ('timestamp', 'signature_ttl'):
            value = getattr(self, name)
            if value is not None and (
                isinstance(value, bool) or not isinstance(value, int)
                or value < 0):
                raise ConfigurationError(
                    "%s must be a non-negative integer (%r)" % (name, value))
        tags = SignatureTags.from_request(self, self.timestamp or 0)
        tags.set_field_list(list(self.include_headers) + [SIGNATURE_HEADER])
        tags.validate()


class SignatureTags(TagList):
    """The Tag=Value list of one DKIM-Signature header field.

    Tags are kept in L{TAG_ORDER} whatever order they are set in.
    """

    @classmethod
    def from_request(cls, request, timestamp):
        tags = cls()
        tags.set('v', '1')
        tags.set('a', request.algorithm)
        tags.set('c', request.c_value)
        tags.set('d', request.domain)
        if request.identity is not None:
            tags.set('i', request.identity)
        tags.set('s', request.selector)
        tags.set('t', str(timestamp))
        if request.signature_ttl is not None:
            tags.set('x', str(timestamp + request.signature_ttl))
        return tags

    def set(self, tag, value):
        if tag not in self and tag in TAG_ORDER:
            rank = TAG_ORDER.index(tag)
            for i, (t, v) in enumerate(self._tags):
                if t in TAG_ORDER and TAG_ORDER.index(t) > rank:
                    self._tags.insert(i, (tag, value))
                    return
        TagList.set(self, tag, value)

    def set_field_list(self, names):
        self.set('h', ':'.join(names))

    def set_body_hash(self, value):
        self.set('bh', value)

    def set_signature_data(self, value):
        self.set('b', value)

    def validate(self):
        """Basic checks for presence and correct formatting of fields.

        Raises a ConfigurationError if checks fail, otherwise returns None.
        """
        for tag in MANDATORY_TAGS:
            if not self.get(tag):
                raise ConfigurationError("signature missing %s=" % tag)
        for tag, value in self.items():
            if not isinstance(value, str):
                raise ConfigurationError(
                    "%s= value is not text (%r)" % (tag, value))
            try:
                value.encode('ascii')
            except UnicodeEncodeError:
                raise ConfigurationError(
                    "%s= value is not ASCII (%s)" % (tag, value))
            if ';' in value or '\r' in value or '\n' in value:
                raise ConfigurationError(
                    "%s= value contains a separator (%r)" % (tag, value))
        if self.get('v') != '1':
            raise ConfigurationError("v= value is not 1 (%s)" % self.get('v'))
        if self.get('a') not in HASH_ALGORITHMS:
            raise ConfigurationError(
                "Unsupported signature algorithm: %s" % self.get('a'))
        try:
            CanonicalizationPolicy.from_c_value(self.get('c'))
        except InvalidCanonicalizationPolicyError as e:
            raise ConfigurationError("invalid c= value: %s" % e.args[0])
        for tag in ('d', 's'):
            for label in self.get(tag).split('.'):
                if not RE_NAME.match(label):
                    raise ConfigurationError(
                        "%s= value is not a valid name (%s)" % (tag, self.get(tag)))
        for name in self.get('h').split(':'):
            if not RE_FIELD_NAME.match(name):
                raise ConfigurationError(
                    "h= value is not a list of header names (%s)" % self.get('h'))
        for tag in ('bh', 'b'):
            if self.get(tag) and not RE_BASE64.match(self.get(tag)):
                raise ConfigurationError(
                    "%s= value is not valid base64 (%s)" % (tag, self.get(tag)))
        if 'i' in self:
            i, d = self.get('i').lower(), self.get('d').lower()
            if not i.endswith(d) or i[-len(d)-1:-len(d)] not in ('@', '.'):
                raise ConfigurationError(
                    "i= domain is not a subdomain of d= (i=%s d=%s)" %
                    (self.get('i'), self.get('d')))
        for tag in ('l', 't', 'x'):
            if tag in self and not RE_DECIMAL.match(self.get(tag)):
                raise ConfigurationError(
                    "%s= value is not a decimal integer (%s)" % (tag, self.get(tag)))
        if 'x' in self and int(self.get('x')) <= int(self.get('t', '0')):
            raise ConfigurationError(
                "x= value is not after t= value (x=%s t=%s)" %
                (self.get('x'), self.get('t')))


_SignatureResult = namedtuple('SignatureResult', [
    'body_hash', 'signature', 'header_value', 'signed_headers',
    'signed_block', 'tags',
])


class SignatureResult(_SignatureResult):
    """The outcome of signing one message.

    signed_block holds the exact bytes that were hashed and signed for b=.
    tags is a tuple of (tag, value) pairs in header order.
    """

    __slots__ = ()

    @property
    def header(self):
        """The DKIM-Signature header field, terminated by CRLF."""
        return (SIGNATURE_HEADER + ': ' + self.header_value + '\r\n').encode(
            'ascii')

    @property
    def signature_fields(self):
        return dict(self.tags)


#: Hold the signing parameters and key for DKIM signing.
class DKIMSigner(object):

    #: Create a signer.
    #:
    #: @param request: a L{SigningRequest}, or DKIM-Signature tags accepted
    #: by L{SigningRequest.from_tags}
    #: @param privkey: a PKCS#1 private key in PEM form, or an already
    #: loaded RSA private key which may be shared between signers
    #: @param logger: a logger to which debug info will be written
    #: (default the "dkimsigner" logger)
    #: @raise ConfigurationError: when the request is invalid
    #: @raise KeyFormatError: when the key cannot be loaded
    def __init__(self, request, privkey, logger=None):
        if logger is None:
            logger = get_default_logger()
        self.logger = logger
        if not isinstance(request, SigningRequest):
            request = SigningRequest.from_tags(request)
        request.validate()
        self.request = request
        self.canon_policy = CanonicalizationPolicy.from_c_value(
            request.c_value)
        self.hasher = HASH_ALGORITHMS[request.algorithm]
        try:
            self.private_key = load_private_key(privkey)
        except UnparsableKeyError as e:
            raise KeyFormatError(str(e))

    #: Sign an RFC822 message and return the signed message: the original
    #: header fields, the new DKIM-Signature field, and the original body.
    #:
    #: @param message: an RFC822 formatted message (with either \\n or
    #: \\r\\n line endings)
    #: @raise ParseError: when the message is malformed
    #: @raise CryptoError: when the key cannot sign the digest
    def sign(self, message):
        msg = self._parse(message)
        result = self._sign_message(msg)
        return msg.as_bytes(result.header)

    #: Compute the DKIM signature of an RFC822 message.
    #:
    #: @return: a L{SignatureResult}
    def signature(self, message):
        return self._sign_message(self._parse(message))

    def _parse(self, message):
        try:
            return rfc822_parse(message)
        except MessageFormatError as e:
            raise ParseError(str(e))

    def _sign_message(self, msg):
        request = self.request
        body = self.canon_policy.canonicalize_body(msg.body)
        h = self.hasher()
        h.update(body)
        bodyhash = base64.b64encode(h.digest()).decode('ascii')
        self.logger.debug("bh: %s", bodyhash)

        timestamp = request.timestamp
        if timestamp is None:
            timestamp = int(time.time())
        tags = SignatureTags.from_request(request, timestamp)
        if request.length:
            tags.set('l', str(len(body)))
        tags.set_body_hash(bodyhash)
        sign_headers = select_headers(msg.headers, request.include_headers)
        include_headers = [x for x, y in sign_headers] + [SIGNATURE_HEADER]
        tags.set_field_list(include_headers)
        tags.set_signature_data('')
        tags.validate()

        dkim_header = (SIGNATURE_HEADER.encode('ascii'),
                       b' ' + tags.serialize().encode('ascii'))
        h = HashThrough(self.hasher())
        hash_headers(h, self.canon_policy, [y for x, y in sign_headers],
                     dkim_header)
        self.logger.debug("sign headers: %r", include_headers)
        self.logger.debug("signed block: %r", h.hashed())

        try:
            sig = RSASSA_PKCS1_v1_5_sign(h, self.private_key)
        except DigestTooLargeError as e:
            raise CryptoError("digest too large for modulus: %s" % e)
        sig = base64.b64encode(sig).decode('ascii')
        tags.set_signature_data(sig)

        return SignatureResult(
            body_hash=bodyhash,
            signature=sig,
            header_value=tags.serialize(),
            signed_headers=tuple(include_headers),
            signed_block=h.hashed(),
            tags=tuple(tags.items()))


def sign(message, selector, domain, privkey, identity=None,
         canonicalize=(Relaxed, Simple),
         signature_algorithm='rsa-sha256',
         include_headers=None, length=False, logger=None):
    """Sign an RFC822 message and return it with a DKIM-Signature header.
    @param message: an RFC822 formatted message (with either \\n or \\r\\n line endings)
    @param selector: the DKIM selector value for the signature
    @param domain: the DKIM domain value for the signature
    @param privkey: a PKCS#1 private key in PEM form
    @param identity: the DKIM identity value for the signature (default none)
    @param canonicalize: the canonicalization algorithms to use (default (Relaxed, Simple))
    @param signature_algorithm: the signing algorithm to use when signing
    @param include_headers: a list of strings indicating which headers are to be signed (default L{DEFAULT_SIGN_HEADERS})
    @param length: true if the l= tag should be included to indicate body length (default False)
    @param logger: a logger to which debug info will be written (default None)
    @return: the signed message
    @raise DKIMException: when the message, include_headers, or key are badly formed.
    """
    request = SigningRequest(
        domain, selector, algorithm=signature_algorithm,
        canonicalize=canonicalize, include_headers=include_headers,
        identity=identity, length=length)
    return DKIMSigner(request, privkey, logger=logger).sign(message)
