from potd.models.subscriber import Subscriber
from potd.models.problem_list import ProblemList
from potd.models.problem import Problem
from potd.models.subscription import Subscription
from potd.models.subscription_progress import SubscriptionProgress
from potd.models.delivery import Delivery
from potd.models.cron_job import CronJob

__all__ = [
    "Subscriber",
    "ProblemList",
    "Problem",
    "Subscription",
    "SubscriptionProgress",
    "Delivery",
    "CronJob",
]
