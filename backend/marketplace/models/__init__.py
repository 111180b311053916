from .profiles import BrandProfile, CreatorProfile
from .subscriptions import Subscription
from .bookings import Booking, EscrowTransaction
from .disputes import Dispute
from .messaging import Conversation, Message
from .notifications import Notification

__all__ = [
    'BrandProfile', 'CreatorProfile',
    'Subscription',
    'Booking', 'EscrowTransaction',
    'Dispute',
    'Conversation', 'Message',
    'Notification',
]
