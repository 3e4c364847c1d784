"""
In-memory fallback storage shared across services.

Audit events that could not be written to the database are parked here so
they are not lost; an operator job can drain the queue once the database is
reachable again. Only the most recent entries are kept while the database
stays down.
"""

import os
from collections import deque

AUDIT_FALLBACK_MAX_ENTRIES = int(os.getenv("AUDIT_FALLBACK_MAX_ENTRIES", "1000"))

audit_logs = deque(maxlen=AUDIT_FALLBACK_MAX_ENTRIES)
