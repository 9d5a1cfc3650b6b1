"""
Tests for authentication app.

This package contains test modules for:
- test_services.py: UserService tests (registration, KYC, referral discount)
- test_views.py: API endpoint tests

Usage:
    pytest authentication/tests/
    pytest authentication/tests/test_services.py
"""
