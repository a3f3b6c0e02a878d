from talentbook.tools.notifications import InMemoryNotifier, NotificationDispatcher
from talentbook.tools.store import BookingStore, InMemoryBookingStore

__all__ = [
    "BookingStore",
    "InMemoryBookingStore",
    "NotificationDispatcher",
    "InMemoryNotifier",
]
