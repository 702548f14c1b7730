"""Dispatcher loop, its events, and the triggers that feed it."""

from chapterbell.core.commands import CommandSurface
from chapterbell.core.dispatcher import Dispatcher, DispatchError
from chapterbell.core.events import (
    AnnounceAll,
    AnnounceOne,
    BotConnection,
    DeliveryConnectionReady,
    FetchAll,
    Quit,
    StartAnnounceAll,
    StartAnnounceOne,
    StartBotConnection,
    StartFetch,
    WorkerFinished,
)
from chapterbell.core.scheduler import Scheduler

__all__ = [
    "AnnounceAll",
    "AnnounceOne",
    "BotConnection",
    "CommandSurface",
    "DeliveryConnectionReady",
    "DispatchError",
    "Dispatcher",
    "FetchAll",
    "Quit",
    "Scheduler",
    "StartAnnounceAll",
    "StartAnnounceOne",
    "StartBotConnection",
    "StartFetch",
    "WorkerFinished",
]
