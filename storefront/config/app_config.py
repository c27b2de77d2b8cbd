from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    ENV: str = "dev"                # "dev" / "staging" / "prod"
    SERVICE_NAME: str = "storefront-checkout"
    ENABLE_METRICS: bool = False

    class Config:
        env_file = ".env"
        extra="ignore"

app_config = Settings()
