# portfolio_tax_engine/utils/sorting_utils.py
from datetime import date
from typing import Any, Iterable, List, NamedTuple, Tuple

from portfolio_tax_engine.domain.enums import EventKind
from portfolio_tax_engine.domain.models import DividendEvent, Transaction

# Tie-breaking on the same day only. Lower value sorts earlier:
# holdings must reflect the day's trades before a dividend is fanned out.
_INTRA_DAY_SORT_ORDER = {
    EventKind.TXN: 0,
    EventKind.DIV: 1,
}


class TaggedEvent(NamedTuple):
    kind: EventKind
    event: Any
    sequence: int # Position in the merged input, keeps the sort stable


def tag_events(transactions: Iterable[Transaction], dividends: Iterable[DividendEvent]) -> List[TaggedEvent]:
    tagged = [TaggedEvent(EventKind.TXN, txn, 0) for txn in transactions]
    tagged += [TaggedEvent(EventKind.DIV, div, 0) for div in dividends]
    return [entry._replace(sequence=i) for i, entry in enumerate(tagged)]


def get_event_sort_key(entry: TaggedEvent) -> Tuple[date, int, int]:
    """(event date, intra-day order, input position)."""
    return (entry.event.date, _INTRA_DAY_SORT_ORDER[entry.kind], entry.sequence)


def sort_events(transactions: Iterable[Transaction], dividends: Iterable[DividendEvent]) -> List[TaggedEvent]:
    return sorted(tag_events(transactions, dividends), key=get_event_sort_key)
