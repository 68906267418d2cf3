"""Конфигурация приложения"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Настройки приложения"""

    # Telegram Bot
    BOT_TOKEN: str = ""

    # Database
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_USER: str = ""
    DB_PASSWORD: str = ""
    DB_NAME: str = ""
    # Полный URL имеет приоритет над отдельными полями
    DATABASE_URL: str = ""

    # Admin
    ADMIN_USER_IDS: str = ""

    # Auction Settings
    # Часовой пояс отображения фиксированный (Дубай, UTC+4, без перехода на летнее время)
    DISPLAY_UTC_OFFSET_HOURS: int = 4
    # Период фоновой сверки статусов лотов и машин (в секундах)
    STATUS_SWEEP_INTERVAL_SECONDS: int = 60
    # Окно склеивания уведомлений об изменениях (в секундах)
    REFRESH_DEBOUNCE_SECONDS: float = 5.0
    # Сколько раз повторять запрос к базе при сетевой ошибке
    NETWORK_RETRY_ATTEMPTS: int = 3
    # Канал LISTEN/NOTIFY, в который база пишет изменения лотов, машин и ставок
    CHANGE_CHANNEL: str = "auction_changes"

    @property
    def admin_ids_list(self) -> List[int]:
        """Список ID администраторов"""
        if not self.ADMIN_USER_IDS:
            return []
        return [int(uid.strip()) for uid in self.ADMIN_USER_IDS.split(",") if uid.strip()]

    @property
    def database_url(self) -> str:
        """URL подключения к базе данных"""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
