"""
Offline Finance Sync - Source Package

Offline-first write path for a personal finance app's debts and assets,
backed by a hosted PostgREST (Supabase) database.

DESIGN PRINCIPLES:
1. A write made offline is never silently lost before replay
2. Replay follows the order the user issued writes in
3. A rejected write is reported, never retried forever
4. Every queued and replayed write is auditable
5. Storage and server access are swappable
"""

__version__ = "1.0.0"
__author__ = "Offline Finance Sync Team"
