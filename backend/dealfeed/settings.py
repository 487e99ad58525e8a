from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    FEED_URL: str = ""
    HOST: str = "0.0.0.0"
    PORT: int = 8000

settings = Settings(_env_file=".env", _env_file_encoding="utf-8")
