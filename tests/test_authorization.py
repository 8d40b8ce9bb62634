import unittest

from booking_engine import Actor, AuthorizationGuard, ForbiddenError, UserRole


class TestOwnershipGuard(unittest.TestCase):
    def setUp(self) -> None:
        self.guard = AuthorizationGuard("s3cret")

    def test_user_may_act_only_for_self(self) -> None:
        actor = Actor(user_id=5, role=UserRole.USER)
        self.assertTrue(self.guard.is_owner_or_elevated(5, actor))
        self.assertFalse(self.guard.is_owner_or_elevated(6, actor))

    def test_trainer_is_not_elevated(self) -> None:
        actor = Actor(user_id=7, role=UserRole.TRAINER)
        self.assertFalse(self.guard.is_owner_or_elevated(5, actor))

    def test_admin_may_act_for_anyone(self) -> None:
        actor = Actor(user_id=1, role=UserRole.ADMIN)
        self.assertTrue(self.guard.is_owner_or_elevated(5, actor))
        self.assertTrue(self.guard.is_owner_or_elevated(None, actor))

    def test_missing_actor_is_never_allowed(self) -> None:
        self.assertFalse(self.guard.is_owner_or_elevated(5, None))

    def test_require_raises_forbidden(self) -> None:
        with self.assertRaises(ForbiddenError) as context:
            self.guard.require_owner_or_elevated(6, Actor(5), "cancel booking")
        self.assertIn("cancel booking", context.exception.message)


class TestRoleElevation(unittest.TestCase):
    def test_non_admin_roles_need_no_secret(self) -> None:
        guard = AuthorizationGuard("s3cret")
        self.assertTrue(guard.can_elevate_role(UserRole.USER, None))
        self.assertTrue(guard.can_elevate_role(UserRole.TRAINER, None))
        self.assertTrue(guard.can_elevate_role(None, None))

    def test_admin_requires_exact_secret(self) -> None:
        guard = AuthorizationGuard("s3cret")
        self.assertTrue(guard.can_elevate_role(UserRole.ADMIN, "s3cret"))
        self.assertFalse(guard.can_elevate_role(UserRole.ADMIN, "S3CRET"))
        self.assertFalse(guard.can_elevate_role(UserRole.ADMIN, ""))
        self.assertFalse(guard.can_elevate_role(UserRole.ADMIN, None))

    def test_unconfigured_secret_blocks_admin(self) -> None:
        guard = AuthorizationGuard(None)
        self.assertFalse(guard.can_elevate_role(UserRole.ADMIN, "anything"))
        with self.assertRaises(ForbiddenError):
            guard.require_role_elevation(UserRole.ADMIN, "anything")


if __name__ == "__main__":
    unittest.main()
