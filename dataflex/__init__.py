"""
DataFlex Ghana — agent earnings service.

    from dataflex.cache import RequestCache
    from dataflex.ledger import summarize_commissions
"""

__version__ = "1.0.0"
