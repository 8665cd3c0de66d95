"""
Доменные перечисления (enum).

Используются во всей системе:
- стадии и исходы обработки задачи переноса
- состояния задач очереди
- статус встречи (участие в комнате)
"""

from __future__ import annotations

import enum


class JobStage(str, enum.Enum):
    """
    Стадии обработки задачи переноса записи.
    """

    received = "received"
    validating = "validating"
    uploading = "uploading"
    reconciling = "reconciling"
    done = "done"


class JobOutcome(str, enum.Enum):
    """
    Итог задачи (терминальное состояние стадии done).
    """

    success = "success"
    partial = "partial"
    hard_failure = "hard_failure"
    empty = "empty"


class JobState(str, enum.Enum):
    """
    Состояние задачи в очереди.
    """

    waiting = "waiting"
    delayed = "delayed"
    active = "active"
    completed = "completed"
    failed = "failed"


class MeetingStatus(str, enum.Enum):
    """
    Статус комнаты встречи.
    """

    pending = "pending"
    waiting = "waiting"
    started = "started"
    completed = "completed"


class RecordingType(str, enum.Enum):
    """
    Известные типы файлов записи (список не закрытый: в вебхуке может прийти любой).
    """

    shared_screen_with_speaker_view = "shared_screen_with_speaker_view"
    shared_screen_with_gallery_view = "shared_screen_with_gallery_view"
    speaker_view = "speaker_view"
    gallery_view = "gallery_view"
    audio_only = "audio_only"
    audio_transcript = "audio_transcript"
    timeline = "timeline"
    chat_file = "chat_file"
