from decimal import Decimal

CATEGORIES = (
    "Art and Collectibles",
    "Antiques and Vintage Items",
    "Jewelry and Watches",
    "Electronics and Gadgets",
    "Automobiles and Vehicles",
    "Home and Garden",
    "Fashion and Accessories",
    "Sports and Fitness Equipment",
    "Toys and Games",
    "Fine Wines and Spirits",
)

ACCEPTED_IMAGE_TYPES = ("image/jpeg", "image/png", "image/webp", "image/gif")

MAX_IMAGE_SIZE = 10485760  # 10MB

# largest value of a DecimalField(max_digits=10, decimal_places=2)
MAX_AMOUNT = Decimal("99999999.99")

USER_BIDS_LIMIT = 50
LOTS_WITH_BIDS_TOP_BIDS = 5
