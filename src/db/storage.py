# names of persisted keys, shared by all services
AUTH_KEY = "customerAuth"
CART_KEY = "customerCart"
SELECTED_SHOP_KEY = "selectedShop"
DISMISSED_NOTICES_KEY = "dismissedNotices"
CURRENT_LOCATION_KEY = "currentLocation"
DELIVERY_ADDRESS_KEY = "deliveryAddress"

INQUIRY_NOTIFIED_PREFIX = "inquiryNotified_"
TERMS_ACCEPTED_PREFIX = "termsAccepted_"


def inquiry_notified_key(order_id: str) -> str:
    return f"{INQUIRY_NOTIFIED_PREFIX}{order_id}"


def terms_accepted_key(terms_id: str) -> str:
    return f"{TERMS_ACCEPTED_PREFIX}{terms_id}"
