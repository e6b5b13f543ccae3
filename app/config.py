from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    openrouter_api_key: str = ""
    llm_model: str = "google/gemini-2.0-flash-exp"
    db_path: str = "ledger.json"

    messaging_provider: Literal["twilio", "telegram"] = "twilio"
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_whatsapp_number: str = ""
    verify_twilio_signature: bool = True
    public_base_url: str = ""
    telegram_bot_token: str = ""
    default_country_code: str = "56"

    admin_phone: str = ""
    cron_secret: str = ""

    default_expense_category: str = "otros"
    default_income_category: str = "otros ingresos"

    suggestion_delay_seconds: float = 3.0
    upsell_delay_seconds: float = 2.0


@lru_cache
def get_settings() -> Settings:
    return Settings()
