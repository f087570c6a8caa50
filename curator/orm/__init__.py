from .base import Base

from .collection import Collection
from .item import Item, ItemStatus, DEFAULT_ELO
from .custom_rank import CustomRank, Sentiment
from .activity import Activity, ActivityType
