from .auction_service import AuctionService
from .bid_service import BidService
from .lot_service import LotService

__all__ = ('AuctionService', 'BidService', 'LotService')
