"""Project isolation policy.

Decides which conversation collections a request may see:

- isolated: current project only; other projects are never visible
- shared: every project
- hybrid: current project, other projects when the request opts in with
  crossProject (or allow_cross_project is set process-wide)

An explicit ``project`` on the request narrows the result to exactly that
project in every mode. In isolated mode a foreign explicit project yields
no collections.
"""

import logging
from collections.abc import Callable, Sequence

from .models import IsolationMode, SearchRequest
from .project import project_key

__all__ = ["IsolationPolicy"]

logger = logging.getLogger("reflection.isolation")


class IsolationPolicy:
    """Pure filter from all conversation collections to the visible ones.

    Args:
        mode: Isolation mode
        current_project: Label of the project the caller works in
        derive_project: Maps a collection name to its project label
        allow_cross_project: Default for requests without crossProject
    """

    def __init__(
        self,
        mode: IsolationMode,
        current_project: str,
        derive_project: Callable[[str], str],
        allow_cross_project: bool = False,
    ):
        self.mode = IsolationMode(mode)
        self.current_project = project_key(current_project)
        self.derive_project = derive_project
        self.allow_cross_project = allow_cross_project

    def _project_of(self, collection: str) -> str:
        return project_key(self.derive_project(collection))

    def visible_collections(
        self, collections: Sequence[str], request: SearchRequest
    ) -> list[str]:
        """Filter collections by the isolation mode and request.

        Returns:
            Visible collection names, in input order.
        """
        if request.project is not None:
            target = project_key(request.project)
            if self.mode is IsolationMode.ISOLATED and target != self.current_project:
                logger.info(
                    "foreign_project_blocked",
                    extra={"requested": target, "current": self.current_project},
                )
                return []
            return [c for c in collections if self._project_of(c) == target]

        if self.mode is IsolationMode.SHARED:
            return list(collections)

        cross_project = request.cross_project
        if cross_project is None:
            cross_project = self.allow_cross_project

        if self.mode is IsolationMode.HYBRID and cross_project:
            return list(collections)

        return [c for c in collections if self._project_of(c) == self.current_project]
