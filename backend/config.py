from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
import os

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')


def _optional(name: str) -> Optional[str]:
    value = os.environ.get(name, "").strip()
    return value or None


@dataclass
class Settings:
    """Environment-level configuration, read once at startup"""
    mongo_url: str = "mongodb://localhost:27017"
    db_name: str = "biodata"
    revenuecat_webhook_token: Optional[str] = None
    revenuecat_webhook_signing_secret: Optional[str] = None
    revenuecat_api_key: Optional[str] = None
    revenuecat_project_id: Optional[str] = None
    revenuecat_api_base_url: str = "https://api.revenuecat.com/v2"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    devanagari_font_path: Optional[str] = None
    image_hosts: List[str] = field(default_factory=lambda: ["res.cloudinary.com"])

    @classmethod
    def from_env(cls) -> "Settings":
        origins = os.environ.get("CORS_ORIGINS", "*")
        image_hosts = os.environ.get("BIODATA_IMAGE_HOSTS", "res.cloudinary.com")
        return cls(
            mongo_url=os.environ.get("MONGO_URL", cls.mongo_url),
            db_name=os.environ.get("DB_NAME", cls.db_name),
            revenuecat_webhook_token=_optional("REVENUECAT_WEBHOOK_TOKEN"),
            revenuecat_webhook_signing_secret=_optional("REVENUECAT_WEBHOOK_SIGNING_SECRET"),
            revenuecat_api_key=_optional("REVENUECAT_API_KEY"),
            revenuecat_project_id=_optional("REVENUECAT_PROJECT_ID"),
            revenuecat_api_base_url=os.environ.get(
                "REVENUECAT_API_BASE_URL", cls.revenuecat_api_base_url
            ),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            log_level=os.environ.get("LOG_LEVEL", cls.log_level).upper(),
            devanagari_font_path=_optional("BIODATA_DEVANAGARI_FONT"),
            image_hosts=[h.strip().lower() for h in image_hosts.split(",") if h.strip()],
        )
