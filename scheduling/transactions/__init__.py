"""
Atomic transaction handlers.

Key design principles:
1. SERIALIZABLE isolation level for DB transactions (PostgreSQL)
2. SELECT FOR UPDATE row locks on the conflict check
3. Storage-level exclusion constraints as the final arbiter
4. Events published only after commit

Transaction handlers:
- BookingTransaction: Create and reschedule appointments
"""

from scheduling.transactions.booking_transaction import BookingTransaction

__all__ = ["BookingTransaction"]
