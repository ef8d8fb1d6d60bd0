"""
                Food Storefront API

Online food-ordering storefront and back office: catalog browsing,
cart handling, checkout with simulated payment, order tracking and
an admin API for orders, promotions and sales reports.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
