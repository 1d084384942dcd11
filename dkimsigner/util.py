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
# Copyright (c) 2011 William Grant <me@williamgrant.id.au>
#
# This has been modified from the original software.

import logging

__all__ = [
    'DuplicateTag',
    'get_default_logger',
    'InvalidTagSpec',
    'InvalidTagValueList',
    'parse_tag_value',
    'TagList',
    ]


class InvalidTagValueList(Exception):
    pass


class DuplicateTag(InvalidTagValueList):
    pass


class InvalidTagSpec(InvalidTagValueList):
    pass


def parse_tag_value(tag_list):
    """Parse a DKIM Tag=Value list.

    Interprets the syntax specified by RFC6376 section 3.2.
    Assumes that folding whitespace is already unfolded.

    >>> sorted(parse_tag_value('v=1; d=example.com;').items())
    [('d', 'example.com'), ('v', '1')]

    @param tag_list: A string containing a DKIM Tag=Value list.
    @return: a dict of tag -> value, in the order the tags appeared.
    """
    tags = {}
    tag_specs = tag_list.split(';')
    # Trailing semicolons are valid.
    if not tag_specs[-1].strip():
        tag_specs.pop()
    for tag_spec in tag_specs:
        try:
            key, value = tag_spec.split('=', 1)
        except ValueError:
            raise InvalidTagSpec(tag_spec)
        if key.strip() in tags:
            raise DuplicateTag(key.strip())
        tags[key.strip()] = value.strip()
    return tags


class TagList(object):
    """An ordered Tag=Value list.

    Tags keep the position of their first assignment; setting an existing
    tag replaces its value in place.
    """

    def __init__(self, tags=()):
        self._tags = []
        for tag, value in tags:
            self.set(tag, value)

    def set(self, tag, value):
        for i, (t, v) in enumerate(self._tags):
            if t == tag:
                self._tags[i] = (tag, value)
                return
        self._tags.append((tag, value))

    def get(self, tag, default=None):
        for t, v in self._tags:
            if t == tag:
                return v
        return default

    def remove(self, tag):
        self._tags = [(t, v) for t, v in self._tags if t != tag]

    def __contains__(self, tag):
        return any(t == tag for t, v in self._tags)

    def __len__(self):
        return len(self._tags)

    def items(self):
        return list(self._tags)

    def serialize(self):
        """Render the list as C{tag=value} pairs joined by C{"; "}.

        >>> TagList([('v', '1'), ('a', 'rsa-sha256'), ('b', '')]).serialize()
        'v=1; a=rsa-sha256; b='
        """
        return "; ".join("%s=%s" % (t, v) for t, v in self._tags)


def get_default_logger():
    """Get the default dkimsigner logger."""
    logger = logging.getLogger('dkimsigner')
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())
    return logger
