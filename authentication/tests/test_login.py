from django.test import TestCase, Client
from django.urls import reverse
from django.core.cache import cache
from django.contrib.auth.hashers import make_password
from authentication.models import User
from audittrail.models import ActivityLog
from unittest.mock import patch
import json


class LoginEndpointTests(TestCase):
    def setUp(self):
        cache.clear()
        self.client = Client()
        self.login_url_name = "authentication:login"
        self.logout_url_name = "authentication:logout"
        self.email = "user@example.com"
        self.password = "ChatGemma2025"

        self.user = User.objects.create(
            username="approved_user",
            password=make_password(self.password),
            email=self.email,
            status=User.Status.APPROVED,
        )

    def _post_json(self, url, payload: dict):
        return self.client.post(
            url,
            data=json.dumps(payload),
            content_type="application/json",
        )

    def _failures(self, reason):
        return ActivityLog.objects.filter(action=ActivityLog.Action.LOGIN_FAILED, details__reason=reason).count()

    def test_login_success(self):
        url = reverse(self.login_url_name)
        response = self._post_json(url, {"email": self.email, "password": self.password})

        self.assertEqual(response.status_code, 200, response.content)
        data = response.json()
        self.assertEqual(data["message"].lower(), "login successful")
        self.assertEqual(data["user"]["username"], "approved_user")

        session = self.client.session
        self.assertEqual(session.get("user_id"), str(self.user.user_id))
        self.assertEqual(session.get("username"), "approved_user")
        self.assertTrue(ActivityLog.objects.filter(action=ActivityLog.Action.LOGIN_SUCCESS).exists())

    def test_email_is_case_insensitive(self):
        response = self._post_json(reverse(self.login_url_name),
                                   {"email": "  USER@Example.com ", "password": self.password})
        self.assertEqual(response.status_code, 200, response.content)

    def test_login_success_and_logout_flow(self):
        login_response = self._post_json(reverse(self.login_url_name),
                                         {"email": self.email, "password": self.password})
        self.assertEqual(login_response.status_code, 200)

        me = self.client.get(reverse("authentication:me"))
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()["user"]["email"], self.email)

        logout_response = self.client.post(reverse(self.logout_url_name), content_type="application/json")
        self.assertEqual(logout_response.status_code, 200)
        self.assertIn("message", logout_response.json())
        self.assertIsNone(self.client.session.get("user_id"))
        self.assertTrue(ActivityLog.objects.filter(action=ActivityLog.Action.LOGOUT).exists())

        self.assertEqual(self.client.get(reverse("authentication:me")).status_code, 401)

    def test_login_invalid_json_returns_400(self):
        response = self.client.post(reverse(self.login_url_name), data="not-a-json{",
                                    content_type="application/json")
        self.assertEqual(response.status_code, 400, response.content)
        self.assertIn("error", response.json())

    def test_invalid_unicode_payload_returns_400(self):
        """negative: requests with bytes that cannot be UTF-8 decoded should return 400"""
        invalid_bytes = b"\xff\xfe\xff"
        response = self.client.post(reverse(self.login_url_name), data=invalid_bytes,
                                    content_type="application/json")
        self.assertEqual(response.status_code, 400, response.content)
        self.assertEqual(response.json().get("error"), "invalid payload")

    def test_missing_fields_returns_400(self):
        response = self._post_json(reverse(self.login_url_name), {"email": self.email})
        self.assertEqual(response.status_code, 400)

    def test_login_nonexistent_credentials(self):
        response = self._post_json(reverse(self.login_url_name),
                                   {"email": "nobody@example.com", "password": "Password123"})
        self.assertEqual(response.status_code, 401, response.content)
        self.assertEqual(self._failures("USER_NOT_FOUND"), 1)

    def test_wrong_password(self):
        response = self._post_json(reverse(self.login_url_name),
                                   {"email": self.email, "password": "WrongPass123"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(self._failures("INVALID_PASSWORD"), 1)
        self.assertIsNone(self.client.session.get("user_id"))

    def test_same_message_for_unknown_user_and_wrong_password(self):
        unknown = self._post_json(reverse(self.login_url_name),
                                  {"email": "nobody@example.com", "password": "Password123"})
        wrong = self._post_json(reverse(self.login_url_name),
                                {"email": self.email, "password": "WrongPass123"})
        self.assertEqual(unknown.json()["error"], wrong.json()["error"])

    def test_pending_user_cannot_login(self):
        User.objects.create(username="pending", email="pending@example.com",
                            password=make_password(self.password))
        response = self._post_json(reverse(self.login_url_name),
                                   {"email": "pending@example.com", "password": self.password})
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["status"], "PENDING")
        self.assertEqual(self._failures("NOT_APPROVED"), 1)
        self.assertIsNone(self.client.session.get("user_id"))

    def test_rejected_user_cannot_login(self):
        User.objects.create(username="rejected", email="rejected@example.com",
                            password=make_password(self.password), status=User.Status.REJECTED)
        response = self._post_json(reverse(self.login_url_name),
                                   {"email": "rejected@example.com", "password": self.password})
        self.assertEqual(response.status_code, 403)
        self.assertEqual(self._failures("REJECTED"), 1)

    def test_rate_limited(self):
        with patch("django_ratelimit.decorators.is_ratelimited", return_value=True):
            response = self._post_json(reverse(self.login_url_name),
                                       {"email": self.email, "password": self.password})
        self.assertEqual(response.status_code, 429)

    def test_csrf_endpoint_returns_token(self):
        response = self.client.get(reverse("authentication:csrf"))
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["csrfToken"])
