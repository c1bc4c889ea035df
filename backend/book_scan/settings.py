"""
Application settings
"""
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # OCR
    ocr_engine: str = "tesseract"  # tesseract, vision
    ocr_language: str = "swe"
    tesseract_cmd: Optional[str] = None

    # Google Cloud (base64-encoded service account JSON)
    google_application_credentials_json: Optional[str] = None

    # Output
    output_dir: str = "best-frames"


def get_settings() -> Settings:
    return Settings()
