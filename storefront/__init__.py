import logging

logger = logging.getLogger("storefront")
