"""chartdesk — Reconcile patient billing, appointments and memos in memory.

Applies dashboard commands (charge a card, schedule a payment, reschedule or
cancel an appointment, add a memo) to an immutable patient record, settles
due auto-payments, and derives which dashboard sections need attention.
"""

__version__ = "0.3.0"
