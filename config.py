import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()

@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "localhost")
    api_port: int = int(os.getenv("API_PORT", "8080"))

    # Storage settings
    data_file: str = os.getenv("LIBRARY_DATA_FILE", "library_data.txt")

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Library Management System")
    log_level: str = os.getenv("LOG_LEVEL", "WARNING").upper()
    debug: bool = os.getenv("DEBUG", "False").lower() in ("true", "1", "yes")


settings = Settings()
