import unittest
from unittest.mock import AsyncMock, MagicMock, patch
import os
import sys
from types import SimpleNamespace

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from beanie import init_beanie
from cryptography.fernet import Fernet
from mongomock_motor import AsyncMongoMockClient
from pymongo.errors import DuplicateKeyError

from movieshare.errors import AuthError, PasswordMismatchError
from movieshare.models.activity import ActivityLog
from movieshare.models.user import User
from movieshare.services.activity_service import SessionActivityRecorder
from movieshare.services.session_service import (
    AuthProvider,
    Session,
    SessionManager,
    hash_password,
    verify_password,
)


class TestPasswordHashing(unittest.TestCase):

    def test_hash_and_verify(self):
        hashed = hash_password("s3cret-pass")
        self.assertTrue(hashed.startswith("$2b$"))
        self.assertTrue(verify_password("s3cret-pass", hashed))
        self.assertFalse(verify_password("wrong", hashed))
        self.assertFalse(verify_password("s3cret-pass", "garbage"))

    def test_malformed_stored_hash_never_matches(self):
        self.assertFalse(verify_password("s3cret-pass", "pbkdf2_sha256$abc$zz$00"))
        self.assertFalse(verify_password("s3cret-pass", "$2b$12$tooshort"))

    def test_salted(self):
        self.assertNotEqual(hash_password("same"), hash_password("same"))


class TestSessionManager(unittest.IsolatedAsyncioTestCase):

    def make_provider(self):
        provider = MagicMock()
        user = SimpleNamespace(id="user-1", email="u@example.com")
        provider.sign_in = AsyncMock(return_value=user)
        provider.register = AsyncMock(return_value=user)
        provider.sign_out = AsyncMock()
        provider.issue_token.return_value = "token-1"
        return provider

    async def test_listener_gets_current_state_then_transitions(self):
        manager = SessionManager(self.make_provider())
        seen = []

        await manager.subscribe(seen.append)
        await manager.sign_in("u@example.com", "pw")
        await manager.sign_out()

        self.assertEqual(seen[0], None)
        self.assertEqual(seen[1], Session(user_id="user-1", email="u@example.com"))
        self.assertEqual(seen[2], None)
        self.assertIsNone(manager.token)

    async def test_unsubscribe(self):
        manager = SessionManager(self.make_provider())
        seen = []
        unsubscribe = await manager.subscribe(seen.append)
        unsubscribe()
        await manager.sign_in("u@example.com", "pw")
        self.assertEqual(seen, [None])

    async def test_password_mismatch_never_calls_provider(self):
        provider = self.make_provider()
        manager = SessionManager(provider)
        with self.assertRaises(PasswordMismatchError):
            await manager.register("u@example.com", "one", "two")
        provider.register.assert_not_awaited()
        self.assertFalse(manager.signed_in)

    async def test_failed_sign_in_keeps_signed_out(self):
        provider = self.make_provider()
        provider.sign_in.side_effect = AuthError("Invalid email or password")
        manager = SessionManager(provider)
        with self.assertRaises(AuthError):
            await manager.sign_in("u@example.com", "bad")
        self.assertFalse(manager.signed_in)

    async def test_affordances(self):
        manager = SessionManager(self.make_provider())
        self.assertEqual(manager.affordances(), {"signedIn": False, "email": None, "canUpload": False, "canDownload": False})
        await manager.sign_in("u@example.com", "pw")
        self.assertEqual(manager.affordances(), {"signedIn": True, "email": "u@example.com", "canUpload": True, "canDownload": True})


class TestAuthProvider(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        client = AsyncMongoMockClient()
        await init_beanie(database=client["movieshare_test"], document_models=[User, ActivityLog])
        self.provider = AuthProvider(Fernet.generate_key().decode())

    async def test_register_sign_in_and_resolve(self):
        user = await self.provider.register("New@Example.com", "password1")
        self.assertEqual(user.email, "new@example.com")

        signed_in = await self.provider.sign_in("new@example.com", "password1")
        token = self.provider.issue_token(signed_in)
        session = await self.provider.resolve_token(token)

        self.assertEqual(session, Session(user_id=str(user.id), email="new@example.com"))

    async def test_duplicate_email_is_a_conflict(self):
        await self.provider.register("dup@example.com", "password1")
        with self.assertRaises(AuthError):
            await self.provider.register("dup@example.com", "password2")

    async def test_concurrent_duplicate_registration_is_a_conflict(self):
        await self.provider.register("race@example.com", "password1")

        # The pre-insert lookup misses, as when two registrations interleave
        with patch.object(User, "find_one", AsyncMock(return_value=None)):
            with self.assertRaises(AuthError) as ctx:
                await self.provider.register("race@example.com", "password2")

        self.assertEqual(ctx.exception.message, "The email address is already in use by another account")
        self.assertEqual(await User.find({"email": "race@example.com"}).count(), 1)

    async def test_email_index_is_unique(self):
        await User(email="a@b.co", password_hash="x").insert()
        with self.assertRaises(DuplicateKeyError):
            await User(email="a@b.co", password_hash="y").insert()

    async def test_malformed_stored_hash_is_a_credential_failure(self):
        await User(email="legacy@example.com", password_hash="pbkdf2_sha256$abc$zz$00").insert()
        with self.assertRaises(AuthError) as ctx:
            await self.provider.sign_in("legacy@example.com", "password1")
        self.assertEqual(ctx.exception.message, "Invalid email or password")

    async def test_short_password_rejected(self):
        with self.assertRaises(AuthError):
            await self.provider.register("short@example.com", "123")

    async def test_wrong_password(self):
        await self.provider.register("u@example.com", "password1")
        with self.assertRaises(AuthError):
            await self.provider.sign_in("u@example.com", "nope")
        with self.assertRaises(AuthError):
            await self.provider.sign_in("ghost@example.com", "password1")

    async def test_sign_out_invalidates_tokens(self):
        user = await self.provider.register("u@example.com", "password1")
        token = self.provider.issue_token(user)

        await self.provider.sign_out(str(user.id))

        self.assertIsNone(await self.provider.resolve_token(token))

    async def test_garbage_token(self):
        self.assertIsNone(await self.provider.resolve_token("not-a-token"))
        other = AuthProvider(Fernet.generate_key().decode())
        user = await self.provider.register("u@example.com", "password1")
        self.assertIsNone(await other.resolve_token(self.provider.issue_token(user)))

    async def test_activity_recorder_logs_transitions(self):
        await self.provider.register("u@example.com", "password1")
        manager = SessionManager(self.provider)
        await manager.subscribe(SessionActivityRecorder())

        await manager.sign_in("u@example.com", "password1")
        await manager.sign_out()

        logs = await ActivityLog.find_all().to_list()
        self.assertEqual(sorted(log.title for log in logs), ["Signed in", "Signed out"])


if __name__ == "__main__":
    unittest.main()
