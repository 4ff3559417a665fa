import uuid
from io import StringIO

from django.contrib.auth.hashers import make_password, check_password
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase
from django.urls import reverse
from rest_framework.test import APITestCase

from audittrail.models import ActivityLog
from authentication.models import User

Action = ActivityLog.Action


def make_user(username, **extra):
    fields = dict(username=username, email=f"{username}@example.com", password=make_password("Password123"))
    fields.update(extra)
    return User.objects.create(**fields)


class AdminApiTestCase(APITestCase):
    def setUp(self):
        self.admin = User.create_admin("root", make_password("Adminpass123"), "root@example.com")
        self.pending = make_user("pending")
        self.login(self.admin)

    def login(self, user):
        session = self.client.session
        session["user_id"] = str(user.user_id)
        session["username"] = user.username
        session.save()


class AccessTests(AdminApiTestCase):
    def test_regular_user_gets_403_and_is_audited(self):
        member = make_user("member", status=User.Status.APPROVED)
        self.login(member)

        resp = self.client.get(reverse("administration:pending_users"))

        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.json()["error"], "관리자 권한이 필요합니다.")
        entry = ActivityLog.objects.get(action=Action.UNAUTHORIZED_ACCESS)
        self.assertEqual(entry.user, member)
        self.assertEqual(entry.details["attempted_action"], "LIST_PENDING_USERS")

    def test_anonymous_gets_403(self):
        self.client.logout()
        resp = self.client.post(reverse("administration:approve_user", kwargs={"user_id": self.pending.user_id}))
        self.assertEqual(resp.status_code, 403)
        self.pending.refresh_from_db()
        self.assertEqual(self.pending.status, User.Status.PENDING)


class ApprovalTests(AdminApiTestCase):
    def test_pending_list(self):
        make_user("approved", status=User.Status.APPROVED)
        resp = self.client.get(reverse("administration:pending_users"))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual([u["username"] for u in resp.json()["users"]], ["pending"])

    def test_approve(self):
        resp = self.client.post(reverse("administration:approve_user", kwargs={"user_id": self.pending.user_id}))
        self.assertEqual(resp.status_code, 200, resp.content)
        self.assertEqual(resp.json()["user"]["status"], "APPROVED")

        self.pending.refresh_from_db()
        self.assertEqual(self.pending.approved_by, self.admin.user_id)
        self.assertTrue(ActivityLog.objects.filter(action=Action.APPROVE_USER,
                                                   resource_id=str(self.pending.user_id)).exists())

    def test_approve_twice_conflicts(self):
        url = reverse("administration:approve_user", kwargs={"user_id": self.pending.user_id})
        self.client.post(url)
        resp = self.client.post(url)
        self.assertEqual(resp.status_code, 409)

    def test_reject_then_approve_conflicts(self):
        reject = reverse("administration:reject_user", kwargs={"user_id": self.pending.user_id})
        self.assertEqual(self.client.post(reject).status_code, 200)
        approve = reverse("administration:approve_user", kwargs={"user_id": self.pending.user_id})
        self.assertEqual(self.client.post(approve).status_code, 409)
        self.pending.refresh_from_db()
        self.assertEqual(self.pending.status, User.Status.REJECTED)

    def test_unknown_user(self):
        resp = self.client.post(reverse("administration:approve_user", kwargs={"user_id": uuid.uuid4()}))
        self.assertEqual(resp.status_code, 404)

    def test_promote(self):
        promote = reverse("administration:promote_user", kwargs={"user_id": self.pending.user_id})
        self.assertEqual(self.client.post(promote).status_code, 409)

        self.client.post(reverse("administration:approve_user", kwargs={"user_id": self.pending.user_id}))
        resp = self.client.post(promote)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["user"]["role"], "ADMIN")
        self.assertTrue(ActivityLog.objects.filter(action=Action.PROMOTE_TO_ADMIN).exists())


class BulkApproveTests(AdminApiTestCase):
    def test_bulk_approve_with_failures(self):
        second = make_user("second")
        done = make_user("done", status=User.Status.APPROVED)
        ids = [str(self.pending.user_id), str(second.user_id), str(done.user_id), "not-a-uuid"]

        resp = self.client.post(reverse("administration:bulk_approve"), {"user_ids": ids}, format="json")

        self.assertEqual(resp.status_code, 200, resp.content)
        self.assertEqual(sorted(u["username"] for u in resp.json()["approved"]), ["pending", "second"])
        self.assertEqual(ActivityLog.objects.filter(action=Action.BULK_APPROVE_FAILED).count(), 2)
        summary = ActivityLog.objects.get(action=Action.BULK_APPROVE)
        self.assertEqual(summary.details, {"count": 2, "total": 4})

    def test_bulk_approve_accepts_plain_list(self):
        resp = self.client.post(reverse("administration:bulk_approve"), [str(self.pending.user_id)], format="json")
        self.assertEqual(resp.status_code, 200)
        self.pending.refresh_from_db()
        self.assertTrue(self.pending.is_approved)

    def test_bulk_approve_requires_ids(self):
        resp = self.client.post(reverse("administration:bulk_approve"), {"user_ids": []}, format="json")
        self.assertEqual(resp.status_code, 400)


class StatisticsTests(AdminApiTestCase):
    def test_counts(self):
        make_user("rejected", status=User.Status.REJECTED)
        make_user("ok", status=User.Status.APPROVED)

        resp = self.client.get(reverse("administration:statistics"))

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {
            "total_users": 4,
            "pending_users": 1,
            "approved_users": 2,
            "rejected_users": 1,
            "admin_count": 1,
            "user_count": 3,
        })


class CreateAdminCommandTests(TestCase):
    def test_creates_admin_once(self):
        out = StringIO()
        call_command("create_admin", "--username", "boss", "--email", "Boss@Example.com",
                     "--password", "Sup3rSecret!", stdout=out)

        admin = User.objects.get(email="boss@example.com")
        self.assertTrue(admin.is_admin)
        self.assertTrue(admin.is_approved)
        self.assertTrue(check_password("Sup3rSecret!", admin.password))

        call_command("create_admin", "--username", "boss", "--email", "boss@example.com",
                     "--password", "Sup3rSecret!", stdout=out)
        self.assertEqual(User.objects.filter(role=User.Role.ADMIN).count(), 1)
        self.assertIn("already exists", out.getvalue())

    def test_requires_password(self):
        with self.assertRaises(CommandError):
            call_command("create_admin", "--email", "x@example.com", "--password", "", stdout=StringIO())
