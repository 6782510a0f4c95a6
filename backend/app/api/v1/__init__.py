# API v1 Package
from app.api.v1 import auth, admin, catalog, costs, finance, hr, inventory, orders, partners, reviews

__all__ = [
    'auth',
    'admin',
    'catalog',
    'costs',
    'finance',
    'hr',
    'inventory',
    'orders',
    'partners',
    'reviews',
]
