"""
Oracle-conditioned limit orders for the 1inch Limit Order Protocol.

Orders are only fillable once an oracle index (stock price, volatility,
custom feed) crosses a threshold; the condition is compiled into an on-chain
predicate and mirrored off-chain for monitoring.
"""

__version__ = "0.1.0"
