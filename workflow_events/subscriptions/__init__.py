from workflow_events.subscriptions.schemas import CreateSubscriptionParams, Subscription, SubscriptionUpdate
from workflow_events.subscriptions.store import SubscriptionStore

__all__ = ["CreateSubscriptionParams", "Subscription", "SubscriptionStore", "SubscriptionUpdate"]
