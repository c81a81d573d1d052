"""Models package."""

from .user import User
from .marketplace_listing import MarketplaceListing
from .transaction_receipt import TransactionReceipt
from .subscription_window import SubscriptionWindow
from .notification import Notification
from .listing_rating import ListingRating
from .favorite import Favorite
from .achievement import Achievement
from .referral import Referral
