from .telegram import AlertConfig, TelegramNotifier, send_test_alert

__all__ = ["AlertConfig", "TelegramNotifier", "send_test_alert"]
