"""
Tests for payments app.

This package contains test modules for:
- test_escrow_service.py: Escrow hold, release and removal
- test_settlement_service.py: Payment intents, confirmation and verification
- test_refund_service.py: Refund requests and admin decisions
- test_locks.py: Request locks and version checks
- test_tasks.py: Webhook and verification Celery tasks
- test_webhooks.py: Webhook intake views and handlers
- test_views.py: API endpoint tests

Usage:
    pytest payments/tests/
    pytest payments/tests/test_settlement_service.py
"""
