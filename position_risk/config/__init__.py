from .models import ExchangeAccountConfig, MonitorConfig, TelegramSettings

__all__ = ["ExchangeAccountConfig", "MonitorConfig", "TelegramSettings"]
