"""
crewscore.services.context — Service Dependencies
==================================================

Every public operation takes a :class:`ServiceContext` as its first
argument: the database engine, the outbound collaborators, the loaded
config and the background task registry.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import Engine

from crewscore.config import DEFAULT_CONFIG, CrewScoreConfig
from crewscore.services.background import BackgroundTasks
from crewscore.services.notifications import (
    ChatPoster,
    DatabaseChatPoster,
    LoggingNotifier,
    Notifier,
)


@dataclass(slots=True)
class ServiceContext:
    engine: Engine
    notifier: Notifier = field(default_factory=LoggingNotifier)
    chat: ChatPoster | None = None
    cfg: CrewScoreConfig = DEFAULT_CONFIG
    background: BackgroundTasks = field(default_factory=BackgroundTasks)

    def __post_init__(self) -> None:
        if self.chat is None:
            self.chat = DatabaseChatPoster(self.engine)
