from .telegram_safe import safe_answer_callback

__all__ = ["safe_answer_callback"]
