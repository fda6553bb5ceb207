"""
Core domain models, numerical primitives, record contracts and errors.

This package contains the foundational building blocks of the energy market
that are independent of the key-value store and of the transport layer.
"""
