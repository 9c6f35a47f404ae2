"""
Document Registry (masterlist).

Scope:
- Controlled documents and their immutable per-revision versions
- Lifecycle state machine (DRAFT -> IN_REVIEW -> APPROVED -> ESIGN_PENDING -> SIGNED -> PUBLISHED,
  plus the ARCHIVED/DISPOSED side branch)
- Append-only disposal records
"""

