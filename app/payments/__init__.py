"""
Payments app: wallets, escrow and payment settlement.

This app handles:
- Double-entry ledger behind every user's balance and escrow balance
- Escrow holds, releases and removals tied to delivery requests
- Payment intents and confirmations with Stripe and Paystack
- Provider webhooks and refund requests

Related apps:
    - authentication: KYC gate before money leaves a wallet
    - deliveries: DeliveryRequest carries payment and escrow state

Usage:
    from payments.services import EscrowService, SettlementService

    SettlementService().confirm(reference, outcome="paid")
"""
