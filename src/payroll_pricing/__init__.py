"""
Payroll Pricing Package

Prices payroll service for merchants (tier → merchant override → discount window)
and computes per-employee payroll taxes from jurisdiction tax tables.
"""

__version__ = "1.0.0"
