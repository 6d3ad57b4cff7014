from app.models.profile import Profile
from app.models.membership import MembershipOrder, MembershipPlan
from app.models.subscription import Subscription, SubscriptionPayment, SubscriptionPlan
from app.models.advertising import AdCampaign, AdPurchase, Business
from app.models.webhook_event import WebhookEvent
