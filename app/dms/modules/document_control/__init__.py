"""
Document Control module (document registry).

GxP alignment (lightweight):
- Controlled documents carry a version history, newest first
- Superseded versions are stamped, never removed
- Every mutation is recorded to the append-only audit ledger
"""
