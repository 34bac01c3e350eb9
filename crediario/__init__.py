"""
Crediário

Store-credit administration: merchants, their clients and credit limits,
and point-of-sale payments and credit grants, behind role-based access.
"""

__version__ = "1.0.0"
