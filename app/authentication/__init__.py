"""
Authentication application.

This app provides the platform's users, JWT login and the per-user
attributes other apps gate on.

Key components:
    - User model: Email-based user with KYC status and referral code
    - UserService: Registration, KYC updates and the referral discount

Usage:
    from authentication.models import User
    from authentication.services import UserService
"""
