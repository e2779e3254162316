from __future__ import annotations

import datetime
import json
import time
from typing import Any, Callable, Optional, Union

from clearmarkup.core.database.protocols import DataAccessPrimitive
from clearmarkup.core.database.query_builder import Db
from clearmarkup.models import UserLog

Window = Union[int, float, datetime.timedelta]


class ActionLog:
    """Records user actions and answers "how often, how recently" questions.

    Rows go to the ``users_logs`` table (see :class:`clearmarkup.models.UserLog`)
    with the action data serialized as JSON and ``created_at`` in epoch
    seconds.
    """

    TABLE = UserLog.__tablename__

    def __init__(
            self,
            database: DataAccessPrimitive,
            logger: Optional[Any] = None,
            clock: Callable[[], float] = time.time
    ) -> None:
        """Initialize the action log.

        Args:
            database: The data-access primitive
            logger: Logger passed on to the query builders
            clock: Source of the current epoch time
        """
        self._database = database
        self._logger = logger
        self._clock = clock

    def _db(self) -> Db:
        return Db(self._database, self._logger)

    def log(self, action: str, data: Any = None, user_id: Optional[int] = None) -> Any:
        """Record an action.

        Args:
            action: Action name, e.g. ``"login_failed"``
            data: Any JSON-serializable payload
            user_id: The acting user, or None for anonymous actions

        Returns:
            The id of the new log row
        """
        return self._db().table(self.TABLE).insert({
            "user_id": user_id,
            "action": action,
            "data": json.dumps(data, default=str),
            "created_at": int(self._clock()),
        })

    def check(self, action: str, times: int, within: Window, user_id: Optional[int]) -> bool:
        """Check whether a user logged an action at least ``times`` times recently.

        Args:
            action: Action name
            times: Minimum number of occurrences
            within: Look-back window in seconds, or a timedelta
            user_id: The user to check

        Returns:
            True if the action occurred at least ``times`` times in the window
        """
        if isinstance(within, datetime.timedelta):
            within = within.total_seconds()
        since = int(self._clock() - within)

        occurrences = self._db().table(self.TABLE).filter({
            "user_id": user_id,
            "action": action,
            "created_at[>]": since,
        }).count()
        return occurrences >= times
