"""Operations context passed to every matching service."""

from dataclasses import dataclass, field

from ledgermatch.config import MatchingSettings, get_settings
from ledgermatch.database.base import Repository


@dataclass
class OperationsContext:
    """Store handle, acting user and settings for one unit of work.

    Services never reach for module-level state; everything they need comes
    from here.
    """

    repo: Repository
    user_id: str
    settings: MatchingSettings = field(default_factory=get_settings)
