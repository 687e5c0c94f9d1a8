"""
Pure calculation engines.

Nothing in this package performs I/O or touches a Session.  Services and
handlers gather inputs, call an engine, and persist what it returns.
"""
