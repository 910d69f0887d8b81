"""
rtstore: deduplicating string vault, key/value indirection and bi-temporal
versioned entity tables on a transactional relational engine.
"""

__version__ = "0.1.0"
