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
    'DigestTooLargeError',
    'HASH_ALGORITHMS',
    'load_private_key',
    'parse_pem_private_key',
    'RSASSA_PKCS1_v1_5_sign',
    'UnparsableKeyError',
    ]

import hashlib

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed


#: Signature algorithm (a= value) to hash constructor.
HASH_ALGORITHMS = {
    'rsa-sha1': hashlib.sha1,
    'rsa-sha256': hashlib.sha256,
    }

# DigestInfo algorithm for each hashlib name.
DIGEST_INFO_MAP = {
    'sha1': hashes.SHA1,
    'sha256': hashes.SHA256,
    }


class DigestTooLargeError(Exception):
    """The digest is too large to fit within the requested length."""
    pass


class UnparsableKeyError(Exception):
    """The data could not be parsed as a key."""
    pass


def parse_pem_private_key(data):
    """Parse a PEM RSA private key.

    @param data: RFC3447 RSAPrivateKey (or PKCS#8) in PEM format.
    @return: RSA private key
    """
    if isinstance(data, str):
        data = data.encode('ascii')
    if not data:
        raise UnparsableKeyError("Private key not found")
    try:
        pk = serialization.load_pem_private_key(data, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise UnparsableKeyError(str(e))
    if not isinstance(pk, rsa.RSAPrivateKey):
        raise UnparsableKeyError(
            "Not an RSA private key: %s" % type(pk).__name__)
    return pk


def load_private_key(key):
    """Return an RSA private key, decoding PEM data if necessary.

    An already decoded key is returned as is, so one key can be shared
    between signers.
    """
    if isinstance(key, rsa.RSAPrivateKey):
        return key
    return parse_pem_private_key(key)


def RSASSA_PKCS1_v1_5_sign(hash, private_key):
    """Sign a digest with RFC3447 RSASSA-PKCS1-v1_5.

    @param hash: hash object to sign
    @param private_key: RSA private key
    @return: signed digest byte string
    """
    algorithm = DIGEST_INFO_MAP[hash.name]()
    # DigestInfo plus 11 bytes of padding must fit in the modulus.
    try:
        return private_key.sign(
            hash.digest(), padding.PKCS1v15(), Prehashed(algorithm))
    except ValueError as e:
        raise DigestTooLargeError(str(e))
