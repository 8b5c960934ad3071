"""
Wholesale Pricing Package

Customer-specific price calculation and quote lifecycle management for
wholesale order lines. Resolves unit prices using Tier → Override → Volume →
Global → Clearance stacking with an MSRP fallback.
"""

__version__ = "1.0.0"
