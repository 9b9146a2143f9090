from dataclasses import dataclass
from enum import Enum
from typing import Any, Hashable, Literal, Optional, Union

CommandName = Literal["pause", "resume", "cancel"]
ViewLevel = Literal["collection", "sub_collection", "detail"]


class StatusCategory(str, Enum):
    RUNNING = "Running"
    PAUSED = "Paused"
    COMPLETED = "Completed"
    FAULTED = "Faulted"
    CANCELLED = "Cancelled"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class StatusInfo:
    category: StatusCategory
    can_pause: bool
    can_resume: bool
    can_cancel: bool


@dataclass(frozen=True)
class CacheEntry:
    key: Hashable
    payload: Any = None
    fetch_sequence: int = 0     # sequence of the last committed result, 0 = nothing committed
    last_fetched_at: Optional[float] = None   # monotonic seconds; None = never fetched or invalidated
    error: Optional[BaseException] = None
    in_flight: bool = False

    @property
    def has_payload(self) -> bool:
        return self.payload is not None

    @property
    def is_loading(self) -> bool:
        return self.in_flight and self.payload is None


@dataclass(frozen=True)
class CollectionView:
    level: ViewLevel = "collection"


@dataclass(frozen=True)
class SubCollectionView:
    process_key: str
    level: ViewLevel = "sub_collection"


@dataclass(frozen=True)
class DetailView:
    process_key: str
    instance_id: str
    folder_key: str
    level: ViewLevel = "detail"


ViewState = Union[CollectionView, SubCollectionView, DetailView]


@dataclass(frozen=True)
class CancelConfirmation:
    token: str
    instance_id: str
    folder_key: str
    expires_at: float    # monotonic seconds
