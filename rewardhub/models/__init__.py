from .ledger import LedgerEntry, LedgerReason, Tier, tier_for
from .account import Account
from .referral import Referral, ReferralStatus
from .withdrawal import Withdrawal, WithdrawalStatus
from .payment_order import PaymentOrder
from .transaction import Transaction, TransactionKind, TransactionStatus
from .service import Service

__all__ = [
    "Account",
    "LedgerEntry",
    "LedgerReason",
    "Tier",
    "tier_for",
    "Referral",
    "ReferralStatus",
    "Withdrawal",
    "WithdrawalStatus",
    "PaymentOrder",
    "Transaction",
    "TransactionKind",
    "TransactionStatus",
    "Service",
]
