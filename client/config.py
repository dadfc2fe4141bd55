from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="STOREFRONT_")

    API_BASE: str = "http://localhost:3001/api"
    STORAGE_KEY: str = "bonneaffaire78_cart"
    STORAGE_DIR: str = ".storefront"
    REQUEST_TIMEOUT: float = 10.0


settings = ClientSettings()
