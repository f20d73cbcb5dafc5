"""
Unit tests for admin password hashing and tokens.
"""

import os
import sys
import unittest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import jwt
from fastapi import HTTPException

import config
from auth import create_access_token, decode_access_token, hash_password, require_admin, verify_password


class TestPasswords(unittest.TestCase):

    def test_verify_correct_password(self):
        stored = hash_password("admin123")
        self.assertTrue(stored.startswith("pbkdf2_sha256$"))
        self.assertTrue(verify_password("admin123", stored))

    def test_reject_wrong_password(self):
        self.assertFalse(verify_password("admin124", hash_password("admin123")))

    def test_salted(self):
        self.assertNotEqual(hash_password("same"), hash_password("same"))

    def test_malformed_hash(self):
        self.assertFalse(verify_password("admin123", "not-a-hash"))
        self.assertFalse(verify_password("admin123", "md5$1$salt$abc"))


class TestTokens(unittest.TestCase):

    def test_round_trip_claims(self):
        claims = decode_access_token(create_access_token(7, "admin"))
        self.assertEqual(claims["id"], 7)
        self.assertEqual(claims["username"], "admin")
        self.assertIn("exp", claims)

    def test_expired_token_rejected(self):
        token = create_access_token(1, "admin", expires_hours=-1)
        with self.assertRaises(jwt.ExpiredSignatureError):
            decode_access_token(token)

    def test_foreign_signature_rejected(self):
        token = jwt.encode({"id": 1, "username": "admin"}, "other-secret", algorithm=config.JWT_ALGORITHM)
        with self.assertRaises(jwt.InvalidSignatureError):
            decode_access_token(token)


class TestRequireAdmin(unittest.TestCase):

    def test_valid_bearer_token(self):
        token = create_access_token(1, "admin")
        self.assertEqual(require_admin(f"Bearer {token}")["username"], "admin")

    def test_missing_header(self):
        with self.assertRaises(HTTPException) as ctx:
            require_admin(None)
        self.assertEqual(ctx.exception.status_code, 401)
        self.assertEqual(ctx.exception.detail, "No token provided")

    def test_header_without_token(self):
        with self.assertRaises(HTTPException) as ctx:
            require_admin("Bearer")
        self.assertEqual(ctx.exception.detail, "No token provided")

    def test_invalid_token(self):
        with self.assertRaises(HTTPException) as ctx:
            require_admin("Bearer garbage.token.value")
        self.assertEqual(ctx.exception.status_code, 401)
        self.assertEqual(ctx.exception.detail, "Invalid token")


if __name__ == "__main__":
    unittest.main()
