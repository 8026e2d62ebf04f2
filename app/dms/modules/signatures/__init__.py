"""
Electronic signature registry (recorded attestations, append-only).
"""
