from storefront.common.logging_setup import get_logger

logger = get_logger("storefront.payments")

COD_LABEL = "Cash on Delivery"
ORDER_STATUS_CONFIRMED = "confirmed"
CLIENT_EVENTS = ["cartUpdated", "walletUpdated"]

GATEWAY_NOT_CONFIGURED_MESSAGE = "Online payment is not configured. Please use Cash on Delivery."
GATEWAY_MISSING_SESSION_MESSAGE = "Invalid payment session. Please try Cash on Delivery."
ORDER_FAILED_MESSAGE = "There was an error placing your order. Please try again."
VERIFY_FAILED_MESSAGE = "Could not verify payment status. Please contact support."
