"""
Microfinance Back-Office

Customer registration, personal and group loans, repayment collections and
loan lifecycle tracking over a JSON document store.
"""

__version__ = "1.0.0"
