"""
Human-legible booking references like CAB20261019143501-X7K9MQ.
"""

import random
import string
from datetime import datetime
from typing import Optional

from cabbooking.app.core.clock import utcnow

REFERENCE_PREFIX = "CAB"
SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
SUFFIX_LENGTH = 6


def generate_booking_reference(now: Optional[datetime] = None) -> str:
    """Timestamp plus a random suffix; uniqueness is enforced by the bookings table."""
    stamp = (now or utcnow()).strftime("%Y%m%d%H%M%S")
    suffix = "".join(random.choices(SUFFIX_ALPHABET, k=SUFFIX_LENGTH))
    return f"{REFERENCE_PREFIX}{stamp}-{suffix}"
