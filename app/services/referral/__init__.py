"""
Referral services package.

Contains the referral graph accessor:
- chain_manager: ancestor chain resolution for commission payouts
"""

from app.services.referral.chain_manager import ReferralChainManager


__all__ = [
    "ReferralChainManager",
]
