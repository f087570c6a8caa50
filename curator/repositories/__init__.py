from .collection_repository import CollectionRepository
from .item_repository import ItemRepository
from .custom_rank_repository import CustomRankRepository
