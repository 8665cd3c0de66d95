"""
Единые ошибки и коды ошибок.

Назначение:
- предсказуемые коды для HTTP/очередей/результатов задач
- единый стиль исключений по проекту

Правило распространения:
- ошибки отдельного файла превращаются в данные (TransferFailure) на границе аплоадера
- до очереди доходят только системные сбои (они запускают ретраи)
"""

from __future__ import annotations

from dataclasses import dataclass


class ErrCode:
    # Общие
    UNKNOWN = "unknown"
    VALIDATION = "validation"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    GONE = "gone"
    CONFIG = "config"

    # Источник (платформа встреч)
    SOURCE_NETWORK = "source_network_error"
    SOURCE_AUTH = "source_auth_error"
    SOURCE_NOT_FOUND = "source_not_found"

    # Назначение (object storage)
    DESTINATION_NOT_FOUND = "destination_not_found"
    DESTINATION_ACCESS = "destination_access_denied"
    TRANSFER = "transfer_error"

    # Метаданные встречи
    RECONCILIATION = "reconciliation_error"

    # Инфра
    DB_ERROR = "db_error"
    REDIS_ERROR = "redis_error"


@dataclass
class AppError(Exception):
    """
    Базовая ошибка приложения.
    - code: стабильный код ошибки
    - message: безопасное сообщение
    - details: доп. данные (без секретов/токенов)
    """

    code: str
    message: str
    details: dict | None = None

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.code}: {self.message}"


class ValidationError(AppError):
    def __init__(self, message: str = "Ошибка валидации", details: dict | None = None) -> None:
        super().__init__(ErrCode.VALIDATION, message, details)


class ForbiddenError(AppError):
    def __init__(self, message: str = "Доступ запрещён", details: dict | None = None) -> None:
        super().__init__(ErrCode.FORBIDDEN, message, details)


class NotFoundError(AppError):
    def __init__(self, message: str = "Не найдено", details: dict | None = None) -> None:
        super().__init__(ErrCode.NOT_FOUND, message, details)


class GoneError(AppError):
    def __init__(self, message: str = "Ресурс больше недоступен", details: dict | None = None) -> None:
        super().__init__(ErrCode.GONE, message, details)


class ConfigError(AppError):
    def __init__(self, message: str = "Ошибка конфигурации", details: dict | None = None) -> None:
        super().__init__(ErrCode.CONFIG, message, details)


# =============================================================================
# ОШИБКИ ПЕРЕНОСА ФАЙЛОВ
# =============================================================================
class TransferError(AppError):
    """
    Catch-all для переноса файла. Подклассы уточняют вид ошибки.
    """

    def __init__(
        self,
        message: str = "Ошибка переноса файла",
        details: dict | None = None,
        *,
        code: str = ErrCode.TRANSFER,
    ) -> None:
        super().__init__(code, message, details)


class SourceNetworkError(TransferError):
    def __init__(self, message: str = "Сетевая ошибка при чтении источника", details: dict | None = None) -> None:
        super().__init__(message, details, code=ErrCode.SOURCE_NETWORK)


class SourceAuthError(TransferError):
    def __init__(
        self, message: str = "Токен скачивания истёк или недействителен", details: dict | None = None
    ) -> None:
        super().__init__(message, details, code=ErrCode.SOURCE_AUTH)


class SourceNotFoundError(TransferError):
    def __init__(self, message: str = "Запись не найдена или удалена", details: dict | None = None) -> None:
        super().__init__(message, details, code=ErrCode.SOURCE_NOT_FOUND)


class DestinationNotFoundError(TransferError):
    def __init__(self, message: str = "Бакет не найден", details: dict | None = None) -> None:
        super().__init__(message, details, code=ErrCode.DESTINATION_NOT_FOUND)


class DestinationAccessError(TransferError):
    def __init__(
        self,
        message: str = "Доступ к бакету запрещён: проверьте ключи и bucket policy",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, details, code=ErrCode.DESTINATION_ACCESS)


class ReconciliationError(AppError):
    def __init__(
        self, message: str = "Не удалось обновить запись встречи", details: dict | None = None
    ) -> None:
        super().__init__(ErrCode.RECONCILIATION, message, details)


class UnexpectedError(AppError):
    def __init__(self, message: str = "Непредвиденная ошибка", details: dict | None = None) -> None:
        super().__init__(ErrCode.UNKNOWN, message, details)


def error_kind(err: BaseException) -> str:
    """
    Стабильный код ошибки для результатов и метрик.
    """
    if isinstance(err, AppError):
        return err.code
    return ErrCode.UNKNOWN


def error_message(err: BaseException, max_len: int = 500) -> str:
    """
    Человекочитаемое сообщение (без префикса кода), обрезанное для логов/результатов.
    """
    msg = err.message if isinstance(err, AppError) else str(err)
    msg = msg or type(err).__name__
    return msg[:max_len]
