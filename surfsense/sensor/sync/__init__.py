"""Session sync infrastructure for Surf Sense.

Modules:
    dedup      — Merge rule for session collections (priority order, first id wins)
    reconciler — Pending / durable / remote history reconciliation and flush
    outbound   — Fire-and-forget per-reading uploads while recording
    scheduler  — Periodic history refresh and remote outbox retry
"""
