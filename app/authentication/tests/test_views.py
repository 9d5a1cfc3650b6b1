"""
Tests for authentication API endpoints.
"""

from authentication.models import KYCStatus


class TestRegisterView:
    def test_register(self, api_client, db):
        response = api_client.post(
            "/api/v1/auth/register/",
            {"email": "someone@example.com", "password": "S3curePass!x"},
            format="json",
        )

        assert response.status_code == 201
        assert response.data["kyc_status"] == KYCStatus.PENDING

    def test_register_duplicate_email(self, api_client, user):
        response = api_client.post(
            "/api/v1/auth/register/",
            {"email": user.email, "password": "S3curePass!x"},
            format="json",
        )

        assert response.status_code == 400

    def test_register_bad_referral_code(self, api_client, db):
        response = api_client.post(
            "/api/v1/auth/register/",
            {
                "email": "someone@example.com",
                "password": "S3curePass!x",
                "referral_code": "ZZZZ9999",
            },
            format="json",
        )

        assert response.status_code == 400
        assert response.data["error_code"] == "INVALID_REFERRAL_CODE"


class TestMeView:
    def test_get_me(self, authenticated_client, user):
        response = authenticated_client.get("/api/v1/auth/me/")

        assert response.status_code == 200
        assert response.data["email"] == user.email

    def test_cannot_self_verify_kyc(self, authenticated_client, pending_kyc_user):
        authenticated_client.force_authenticate(user=pending_kyc_user)

        response = authenticated_client.patch(
            "/api/v1/auth/me/", {"kyc_status": "verified"}, format="json"
        )

        assert response.status_code == 200
        pending_kyc_user.refresh_from_db()
        assert pending_kyc_user.kyc_status == KYCStatus.PENDING

    def test_requires_auth(self, api_client, db):
        response = api_client.get("/api/v1/auth/me/")

        assert response.status_code == 401


class TestKYCStatusView:
    def test_admin_sets_status(self, admin_client, pending_kyc_user):
        response = admin_client.post(
            f"/api/v1/auth/users/{pending_kyc_user.pk}/kyc/",
            {"kyc_status": "verified"},
            format="json",
        )

        assert response.status_code == 200
        assert response.data["kyc_status"] == KYCStatus.VERIFIED

    def test_non_admin_forbidden(self, authenticated_client, pending_kyc_user):
        response = authenticated_client.post(
            f"/api/v1/auth/users/{pending_kyc_user.pk}/kyc/",
            {"kyc_status": "verified"},
            format="json",
        )

        assert response.status_code == 403


class TestReferralApplyView:
    def test_apply_once(self, authenticated_client):
        first = authenticated_client.post(
            "/api/v1/auth/referral/apply/", {"amount_cents": 10000}, format="json"
        )
        second = authenticated_client.post(
            "/api/v1/auth/referral/apply/", {"amount_cents": 10000}, format="json"
        )

        assert first.status_code == 200
        assert first.data["applied"] is True
        assert first.data["discount_cents"] == 300
        assert second.data["applied"] is False
        assert second.data["discount_cents"] == 0
