"""Global enums — values are also the persisted and wire representation."""

from enum import Enum


class ShareSide(str, Enum):
    YES = "YES"
    NO = "NO"

    @property
    def other(self) -> "ShareSide":
        return ShareSide.NO if self is ShareSide.YES else ShareSide.YES


class MarketStatus(str, Enum):
    OPEN = "OPEN"
    RESOLVED_YES = "RESOLVED_YES"
    RESOLVED_NO = "RESOLVED_NO"
    RESOLVED_UNDO = "RESOLVED_UNDO"


class ResolutionOutcome(str, Enum):
    YES = "YES"
    NO = "NO"
    UNDO = "UNDO"

    @property
    def terminal_status(self) -> MarketStatus:
        return _TERMINAL_STATUS[self]


_TERMINAL_STATUS = {
    ResolutionOutcome.YES: MarketStatus.RESOLVED_YES,
    ResolutionOutcome.NO: MarketStatus.RESOLVED_NO,
    ResolutionOutcome.UNDO: MarketStatus.RESOLVED_UNDO,
}
