"""
Change bus topic names.
"""

ORDER_UPDATED = "order_updated"
TOKEN_UPDATED = "token_updated"
