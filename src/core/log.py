"""
Logging utilities для crowdfund ledger.

Handler вешается один раз на корневой logger пакета (первый компонент имени);
module loggers наследуют его через иерархию и своих handlers не имеют.
Корневой logger пакета не передает записи дальше (propagate=False), поэтому
приложение, настроившее root logger, не получает дублей.

Уровень переопределяется переменной окружения CROWDFUND_LOG_LEVEL.
"""

import logging
import os
import threading
from typing import Optional

_DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

LOG_LEVEL_ENV_VAR = "CROWDFUND_LOG_LEVEL"

PACKAGE_LOGGER_NAME = "src"

_configure_lock = threading.Lock()


def _configure_package_logger(package_name: str) -> logging.Logger:
    package_logger = logging.getLogger(package_name)
    with _configure_lock:
        if package_logger.handlers:
            return package_logger

        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_DEFAULT_FORMAT))
        package_logger.addHandler(handler)
        package_logger.propagate = False

        level_str = os.getenv(LOG_LEVEL_ENV_VAR, "INFO").upper()
        package_logger.setLevel(getattr(logging, level_str, logging.INFO))
    return package_logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Получение logger модуля.

    Args:
        name: Имя logger (обычно __name__); по умолчанию корень пакета

    Returns:
        logging.Logger без собственных handlers, пишущий через корень пакета
    """
    name = name or PACKAGE_LOGGER_NAME
    _configure_package_logger(name.split(".", 1)[0])
    return logging.getLogger(name)
