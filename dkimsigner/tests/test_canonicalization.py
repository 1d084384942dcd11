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

import unittest

from dkimsigner.canonicalization import (
    canonicalize_body,
    canonicalize_header,
    CanonicalizationPolicy,
    InvalidCanonicalizationPolicyError,
    Relaxed,
    Simple,
    )


class BaseCanonicalizationTest(unittest.TestCase):

    def assertCanonicalForm(self, expected, input):
        self.assertEqual(expected, self.func(expected))
        self.assertEqual(expected, self.func(input))


class BaseHeaderCanonicalizationTest(unittest.TestCase):

    def assertCanonicalForm(self, expected, name, value):
        self.assertEqual(expected, self.func(name, value))
        cname, cvalue = expected.split(b':', 1)
        self.assertEqual(expected, self.func(cname, cvalue))


class TestSimpleAlgorithmHeaders(BaseHeaderCanonicalizationTest):

    func = staticmethod(Simple.canonicalize_header)

    def test_untouched(self):
        self.assertCanonicalForm(
            b'Foo  :bar', b'Foo  ', b'bar')

    def test_keeps_folding_and_leading_space(self):
        self.assertCanonicalForm(
            b'Subject: this is my\r\n    test message',
            b'Subject', b' this is my\r\n    test message')


class TestSimpleAlgorithmBody(BaseCanonicalizationTest):

    func = staticmethod(Simple.canonicalize_body)

    def test_strips_trailing_empty_lines_from_body(self):
        self.assertCanonicalForm(
            b'Foo  \tbar    \r\n',
            b'Foo  \tbar    \r\n\r\n')

    def test_empty_body_is_crlf(self):
        self.assertCanonicalForm(b'\r\n', b'')

    def test_only_empty_lines_is_crlf(self):
        self.assertCanonicalForm(b'\r\n', b'\r\n\r\n\r\n')

    def test_adds_missing_crlf(self):
        self.assertCanonicalForm(b'Foo\r\n', b'Foo')

    def test_keeps_inner_empty_lines(self):
        self.assertCanonicalForm(
            b'Foo\r\n\r\n\r\nbar\r\n',
            b'Foo\r\n\r\n\r\nbar\r\n\r\n')

    def test_bare_lf_is_a_line_ending(self):
        self.assertCanonicalForm(
            b'Foo\r\nbar\r\n',
            b'Foo\nbar\n\n')

    def test_keeps_whitespace_only_last_line(self):
        self.assertCanonicalForm(
            b'Foo\r\n  \r\n',
            b'Foo\r\n  \r\n\r\n')


class TestRelaxedAlgorithmHeaders(BaseHeaderCanonicalizationTest):

    func = staticmethod(Relaxed.canonicalize_header)

    def test_lowercases_names(self):
        self.assertCanonicalForm(b'foo:Bar', b'Foo', b'Bar')
        self.assertCanonicalForm(b'baz:Foo', b'BaZ', b'Foo')

    def test_unfolds_values(self):
        self.assertCanonicalForm(
            b'foo:Bar baz', b'Foo', b'Bar\r\n baz')

    def test_wsp_compresses_values(self):
        self.assertCanonicalForm(
            b'foo:Bar baz', b'Foo', b'Bar \t baz')

    def test_wsp_strips(self):
        self.assertCanonicalForm(
            b'foo:Bar baz', b'Foo  ', b'   Bar \t baz   ')

    def test_subject(self):
        self.assertCanonicalForm(
            b'subject:Hello fook', b'Subject', b' Hello   fook')

    def test_empty_value(self):
        self.assertCanonicalForm(b'x-empty:', b'X-Empty', b'  ')


class TestRelaxedAlgorithmBody(BaseCanonicalizationTest):

    func = staticmethod(Relaxed.canonicalize_body)

    def test_strips_trailing_wsp(self):
        self.assertCanonicalForm(
            b'Foo\r\nbar\r\n',
            b'Foo  \t\r\nbar\r\n')

    def test_wsp_compresses(self):
        self.assertCanonicalForm(
            b'Foo bar\r\n',
            b'Foo  \t  bar\r\n')

    def test_leading_wsp_becomes_one_space(self):
        self.assertCanonicalForm(
            b' Foo\r\n',
            b' \t Foo\r\n')

    def test_strips_trailing_empty_lines(self):
        self.assertCanonicalForm(
            b'Foo\r\nbar\r\n',
            b'Foo\r\nbar\r\n\r\n\r\n')

    def test_whitespace_lines_are_empty_lines(self):
        self.assertCanonicalForm(
            b'Foo\r\n',
            b'Foo\r\n \t\r\n  \r\n')

    def test_empty_body_is_empty(self):
        self.assertCanonicalForm(b'', b'')
        self.assertCanonicalForm(b'', b'\r\n \r\n')

    def test_adds_missing_crlf(self):
        self.assertCanonicalForm(b'Foo bar\r\n', b'Foo  bar  ')

    def test_line_endings_stay_in_place(self):
        body = b'a  b\r\n\r\nc \t d \r\ne\r\n'
        self.assertEqual(b'a b\r\n\r\nc d\r\ne\r\n', self.func(body))
        self.assertNotIn(b'  ', self.func(body))


class TestCanonicalizeFunctions(unittest.TestCase):

    def test_body_modes(self):
        self.assertEqual(b'\r\n', canonicalize_body(b'', 'simple'))
        self.assertEqual(b'', canonicalize_body(b'', 'relaxed'))

    def test_header_modes(self):
        self.assertEqual(
            b'Subject: Hello   fook',
            canonicalize_header(b'Subject', b' Hello   fook', 'simple'))
        self.assertEqual(
            b'subject:Hello fook',
            canonicalize_header(b'Subject', b' Hello   fook', 'relaxed'))

    def test_unknown_mode(self):
        self.assertRaises(
            InvalidCanonicalizationPolicyError,
            canonicalize_body, b'', 'strict')


class TestCanonicalizationPolicy(unittest.TestCase):

    def test_c_value(self):
        policy = CanonicalizationPolicy.from_c_value('relaxed/simple')
        self.assertIs(Relaxed, policy.header_algorithm)
        self.assertIs(Simple, policy.body_algorithm)
        self.assertEqual('relaxed/simple', policy.to_c_value())

    def test_body_defaults_to_simple(self):
        policy = CanonicalizationPolicy.from_c_value('relaxed')
        self.assertEqual('relaxed/simple', policy.to_c_value())

    def test_default_is_simple_simple(self):
        policy = CanonicalizationPolicy.from_c_value(None)
        self.assertEqual('simple/simple', policy.to_c_value())

    def test_invalid(self):
        for c in ('relaxed/simple/simple', 'foo/simple', 'simple/bar', ''):
            self.assertRaises(
                InvalidCanonicalizationPolicyError,
                CanonicalizationPolicy.from_c_value, c)
