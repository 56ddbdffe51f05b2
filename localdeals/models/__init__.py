# localdeals/models/__init__.py
from localdeals.models.user_models import User, UserRole
from localdeals.models.store_models import Store
from localdeals.models.subscription_models import Subscription
from localdeals.models.deal_models import Deal, DealType, DealStatus
from localdeals.models.redemption_models import Redemption, RedemptionStatus
from localdeals.models.analytics_models import AnalyticsEvent
from localdeals.models.saved_models import SavedDeal, FavoriteStore
from localdeals.models.review_models import Review, ModerationStatus
