from .carts import CART_STATUS_OPEN, CART_STATUS_SUBMITTING, CartEntry

__all__ = [
    'CART_STATUS_OPEN',
    'CART_STATUS_SUBMITTING',
    'CartEntry',
]
