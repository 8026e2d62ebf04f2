"""
Workflow Engine: role-gated sequential approval of controlled documents.

Each transition mints at most one electronic signature and exactly one
audit entry, inside the caller's transaction.
"""
