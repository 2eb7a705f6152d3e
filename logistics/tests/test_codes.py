"""
Tests for validation code generation and hashing.
"""

import hashlib
from django.test import SimpleTestCase

from logistics.services.codes import (
    CODE_ALPHABET, CODE_LENGTH,
    generate_code, normalize_code, hash_code, codes_match, is_valid_code_hash,
)


class TestCodeGeneration(SimpleTestCase):

    def test_generated_codes_use_alphabet_and_length(self):
        for _ in range(500):
            code = generate_code()
            self.assertEqual(len(code), CODE_LENGTH)
            self.assertTrue(set(code) <= set(CODE_ALPHABET), code)

    def test_alphabet_excludes_ambiguous_characters(self):
        for ch in '01IO':
            self.assertNotIn(ch, CODE_ALPHABET)
        self.assertEqual(CODE_ALPHABET, CODE_ALPHABET.upper())

    def test_codes_vary(self):
        codes = {generate_code() for _ in range(50)}
        self.assertGreater(len(codes), 1)


class TestCodeHashing(SimpleTestCase):

    def test_normalize_strips_and_uppercases(self):
        self.assertEqual(normalize_code('  ab12cd \n'), 'AB12CD')
        self.assertEqual(normalize_code(None), '')

    def test_hash_is_sha256_hex_of_normalized_code(self):
        expected = hashlib.sha256(b'AB12CD').hexdigest()
        self.assertEqual(hash_code('AB12CD'), expected)
        self.assertEqual(len(hash_code('AB12CD')), 64)

    def test_hash_is_case_insensitive(self):
        for _ in range(50):
            code = generate_code()
            self.assertEqual(hash_code(code), hash_code(code.lower()))
            self.assertEqual(hash_code(code), hash_code(f' {code.lower()} '))

    def test_codes_match(self):
        stored = hash_code('AB12CD')
        self.assertTrue(codes_match('ab12cd', stored))
        self.assertFalse(codes_match('ZZZZZZ', stored))
        self.assertFalse(codes_match('AB12CD', None))

    def test_hash_format_check(self):
        self.assertTrue(is_valid_code_hash(hash_code('X')))
        self.assertFalse(is_valid_code_hash(hash_code('X').upper()))
        self.assertFalse(is_valid_code_hash('abc'))
        self.assertFalse(is_valid_code_hash(None))
