# reportd/app/config.py
import os

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Settings:
    """Настройки через переменные окружения (+ .env, если он есть)."""

    def __init__(self) -> None:
        self.PROJECT_NAME = os.getenv("REPORTD_PROJECT_NAME", "reportd")
        self.DEBUG = _flag("REPORTD_DEBUG", "false")

        # reports+json, похожий на security reports, отправлять в канал дедупликации
        self.SECURITY_REPORTS = _flag("REPORTD_SECURITY_REPORTS", "false")

        # окно по умолчанию для GET /summary
        self.SUMMARY_DAYS = int(os.getenv("REPORTD_SUMMARY_DAYS", "7"))

        self.AUDIT_URL = os.getenv("AUDIT_URL", "http://localhost:8003")
        self.AUDIT_ENABLED = _flag("REPORTD_AUDIT_ENABLED", "true")


settings = Settings()
