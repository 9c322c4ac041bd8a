"""
Standard type definitions for database models.

Provides consistent types for monetary and rate fields across all models.
"""

from sqlalchemy import DECIMAL

# Standard money type for prices, balances, commissions
# Precision: 12 digits total, 2 after decimal point
# Range: up to 9,999,999,999.99
MoneyType = DECIMAL(12, 2)

# Commission rate as a fraction (0.1000 = 10%)
# Precision: 6 digits total, 4 after decimal point
# Range: 0.0000 to 99.9999
RateType = DECIMAL(6, 4)
