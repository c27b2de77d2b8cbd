from pydantic_settings import BaseSettings

class Settings(BaseSettings):

    # storefront REST api that owns addresses, wallets, orders and payments
    STOREFRONT_API_BASE : str = "http://localhost:5000/api"
    STOREFRONT_API_TIMEOUT : float = 10.0

    SESSION_BACKEND : str = "redis"     # "redis" / "memory"
    SESSION_TTL_SECONDS : int = 60 * 60 * 24
    SUBMISSION_LOCK_SECONDS : int = 60
    REDIS_HOST : str = "localhost"
    REDIS_PORT : int = 6379
    REDIS_DB : int = 0

    DATABASE_URL : str | None = None

    FREE_SHIPPING_THRESHOLD : float = 599
    DEFAULT_SHIPPING_RATE : float = 99
    PICKUP_PINCODE : str = "400614"
    PARCEL_WEIGHT_PER_UNIT : float = 0.5

    WALLET_POLL_INTERVAL_SECONDS : float = 1.0
    WALLET_RESERVE_DESCRIPTION : str = "Checkout cashback redemption"
    PINCODE_DEBOUNCE_SECONDS : float = 0.45

    CASHFREE_SDK_URL : str = "https://sdk.cashfree.com/js/v3/cashfree.js"
    PUBLIC_BASE_URL : str = "http://localhost:5173"
    ORDER_NOTE : str = "Beauty Store Purchase"
    PLACEHOLDER_CUSTOMER_NAME : str = "Customer"
    PLACEHOLDER_EMAIL : str = "customer@example.com"
    PLACEHOLDER_PHONE : str = "9999999999"

    class Config:
        env_file = ".env"
        extra="ignore"

config_settings = Settings()
