"""
Машина состояний задачи переноса записи.

Назначение:
- received → validating → uploading → reconciling → done
- reconciling пропускается, если ни один файл не загружен
- вычисление итогового исхода (success | partial | hard_failure | empty)
"""

from __future__ import annotations

from dataclasses import dataclass

from .enums import JobOutcome, JobStage


# =============================================================================
# РЕЗУЛЬТАТ ПЕРЕХОДА
# =============================================================================
@dataclass
class TransitionResult:
    ok: bool
    next_stage: JobStage | None = None
    reason: str | None = None


# =============================================================================
# ПОРЯДОК СТАДИЙ
# =============================================================================
def _stage_order() -> list[JobStage]:
    return [
        JobStage.received,
        JobStage.validating,
        JobStage.uploading,
        JobStage.reconciling,
        JobStage.done,
    ]


def next_stage_after(current: JobStage) -> JobStage | None:
    """
    Возвращает следующую стадию по умолчанию.
    """
    order = _stage_order()
    if current not in order:
        return None

    idx = order.index(current)
    return order[idx + 1] if idx + 1 < len(order) else None


# =============================================================================
# ПЕРЕХОД СОСТОЯНИЙ
# =============================================================================
def transition(stage: JobStage, *, succeeded_files: int = 0, total_files: int = 0) -> TransitionResult:
    """
    Правила перехода:
    - validating без файлов → сразу done (пустая задача - не ошибка)
    - uploading без успешных файлов → done (сверка не нужна)
    - done → терминальная стадия
    """
    if stage == JobStage.done:
        return TransitionResult(ok=False, reason="terminal_stage")

    if stage == JobStage.validating and total_files == 0:
        return TransitionResult(ok=True, next_stage=JobStage.done, reason="no_files")

    if stage == JobStage.uploading and succeeded_files == 0:
        return TransitionResult(ok=True, next_stage=JobStage.done, reason="nothing_uploaded")

    return TransitionResult(ok=True, next_stage=next_stage_after(stage))


def outcome_for(*, succeeded_files: int, failed_files: int) -> JobOutcome:
    if succeeded_files == 0 and failed_files == 0:
        return JobOutcome.empty
    if failed_files == 0:
        return JobOutcome.success
    if succeeded_files == 0:
        return JobOutcome.hard_failure
    return JobOutcome.partial
