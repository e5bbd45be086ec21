"""Resource operations over the Typecho content tables.

Each function takes an open `Store` and, where the operation is
authenticated, the caller's `Identity`; route handlers resolve the identity
first and pass it in.
"""
