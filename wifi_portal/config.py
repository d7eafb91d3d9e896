from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()  # Optional if you use a .env file

class Settings(BaseSettings):
    # SQLite for local use - point at postgresql+asyncpg://... in production
    DATABASE_URL: str = "sqlite+aiosqlite:///./wifi_portal.db"
    SECRET_KEY: str = "your-secret-key"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440

    # Default dashboard account, created by init_db / first startup
    DEFAULT_ADMIN_EMAIL: str = "admin@example.com"
    DEFAULT_ADMIN_PASSWORD: str = "admin123"

    # Access window tracking
    CLOCK_TICK_SECONDS: float = 1.0
    SESSION_REAP_INTERVAL_SECONDS: int = 60

    # Payments
    PAYMENT_GATEWAY: str = "simulated"  # simulated | mpesa
    PAYMENT_SIMULATED_DELAY_SECONDS: float = 3.0
    PAYMENT_TIMEOUT_SECONDS: float = 60.0

    # M-Pesa Configuration (only read when PAYMENT_GATEWAY=mpesa)
    MPESA_CONSUMER_KEY: str = ""
    MPESA_CONSUMER_SECRET: str = ""
    MPESA_SHORTCODE: str = "174379"
    MPESA_PASSKEY: str = ""
    MPESA_CALLBACK_URL: str = ""
    MPESA_ENVIRONMENT: str = "sandbox"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
