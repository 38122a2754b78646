# in-memory replica of the replicated tables + observer registry
import itertools
import logging
from typing import Callable, Dict, List, Union

from .models import PresentationState, Row, TableName

logger = logging.getLogger(__name__)

Observer = Callable[[List[Row]], None]
TableRef = Union[str, TableName]


class Subscription:
    """
    Handle returned by TableStore.subscribe. Calling it (or cancel())
    removes exactly this registration; repeated calls are no-ops.
    """

    def __init__(self, store: "TableStore", table: TableName, token: int):
        self._store = store
        self.table = table
        self.token = token
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self._store._unsubscribe(self.table, self.token)
            self.active = False

    __call__ = cancel


class TableStore:
    """
    Holds one list of rows per table. Updates are whole-table replaces;
    every replace is pushed synchronously to that table's observers in
    registration order.
    """

    def __init__(self) -> None:
        self._tables: Dict[TableName, List[Row]] = {name: [] for name in TableName}
        self._tables[TableName.PRESENTATION] = [PresentationState()]
        self._observers: Dict[TableName, Dict[int, Observer]] = {name: {} for name in TableName}
        self._tokens = itertools.count(1)

    def get_table(self, name: TableRef) -> List[Row]:
        table = TableName.parse(name)
        return [row.model_copy(deep=True) for row in self._tables[table]]

    def replace_table(self, name: TableRef, rows: List[Row], notify: bool = True) -> None:
        table = TableName.parse(name)
        self._tables[table] = [row.model_copy(deep=True) for row in rows]
        if notify:
            self.notify(table)

    def notify(self, name: TableRef) -> None:
        table = TableName.parse(name)
        # copy: observers may unsubscribe while being notified
        for token, observer in list(self._observers[table].items()):
            try:
                observer(self.get_table(table))
            except Exception:
                logger.exception("observer %s for table %s failed", token, table.value)

    def subscribe(self, name: TableRef, observer: Observer) -> Subscription:
        table = TableName.parse(name)
        token = next(self._tokens)
        self._observers[table][token] = observer
        return Subscription(self, table, token)

    def _unsubscribe(self, table: TableName, token: int) -> None:
        self._observers[table].pop(token, None)

    def observer_count(self, name: TableRef) -> int:
        return len(self._observers[TableName.parse(name)])

    def presentation_state(self) -> PresentationState:
        rows = self._tables[TableName.PRESENTATION]
        if not rows:
            return PresentationState()
        return rows[0].model_copy(deep=True)
