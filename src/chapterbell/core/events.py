"""
Worker identities and the events the dispatcher loop consumes.

Worker kinds are value objects: the tracker compares them by equality, so
``AnnounceOne("a") == AnnounceOne("a")`` while ``AnnounceOne("b")`` is a
separate slot.
"""

from dataclasses import dataclass

from chapterbell.delivery.channels import DeliveryHandle


@dataclass(frozen=True)
class FetchAll:
    label = "fetch_all"


@dataclass(frozen=True)
class AnnounceAll:
    label = "announce_all"


@dataclass(frozen=True)
class AnnounceOne:
    destination_id: str

    label = "announce_one"


@dataclass(frozen=True)
class BotConnection:
    label = "bot_connection"


WorkerKind = FetchAll | AnnounceAll | AnnounceOne | BotConnection


@dataclass(frozen=True)
class StartFetch:
    """Fetch every target; optionally chain an announce-all afterwards."""

    trigger_announce: bool = False


@dataclass(frozen=True)
class StartAnnounceAll:
    pass


@dataclass(frozen=True)
class StartAnnounceOne:
    destination_id: str


@dataclass(frozen=True)
class StartBotConnection:
    pass


@dataclass(frozen=True)
class DeliveryConnectionReady:
    handle: DeliveryHandle


@dataclass(frozen=True)
class WorkerFinished:
    """Posted by the loop itself when a tracked worker task completes."""

    kind: WorkerKind


@dataclass(frozen=True)
class Quit:
    pass


Event = (
    StartFetch
    | StartAnnounceAll
    | StartAnnounceOne
    | StartBotConnection
    | DeliveryConnectionReady
    | WorkerFinished
    | Quit
)
