"""
In-memory read model over the geographic area hierarchy.

An ``AreaTree`` is a snapshot built once per request from the area
repository. Every walk is iterative (parent-pointer loops upward, deque BFS
downward) so arbitrarily deep hierarchies never touch the recursion limit.
"""

from collections import deque
from typing import Dict, Iterable, List, Optional, Set

from shared.errors import NotFoundError
from .models import GeographicArea


class AreaTree:
    """Adjacency structure keyed by area ID."""

    def __init__(self, areas: Iterable[GeographicArea] = ()):
        self._areas: Dict[str, GeographicArea] = {}
        self._children: Dict[str, List[str]] = {}

        for area in areas:
            self._areas[area.id] = area

        for area in self._areas.values():
            if area.parent_area_id is not None:
                self._children.setdefault(area.parent_area_id, []).append(area.id)

        for child_ids in self._children.values():
            child_ids.sort(key=lambda a: (self._areas[a].name, a))

    def __len__(self) -> int:
        return len(self._areas)

    def __contains__(self, area_id: object) -> bool:
        return area_id in self._areas

    def get(self, area_id: str) -> Optional[GeographicArea]:
        return self._areas.get(area_id)

    def area(self, area_id: str) -> GeographicArea:
        """Return the area or raise ``NotFoundError``."""
        area = self._areas.get(area_id)
        if area is None:
            raise NotFoundError("Geographic area not found", {"area_id": area_id})
        return area

    def parent_of(self, area_id: str) -> Optional[str]:
        return self.area(area_id).parent_area_id

    def path_to_root(self, area_id: str) -> List[str]:
        """Return ``[root, ..., parent, area_id]``."""
        self.area(area_id)

        path = []
        seen: Set[str] = set()
        current: Optional[str] = area_id
        # Parents missing from the snapshot end the walk
        while current is not None and current in self._areas and current not in seen:
            seen.add(current)
            path.append(current)
            current = self._areas[current].parent_area_id

        path.reverse()
        return path

    def ancestors_of(self, area_id: str) -> List[GeographicArea]:
        """Strict ancestors, closest first."""
        path = self.path_to_root(area_id)
        return [self._areas[a] for a in reversed(path[:-1])]

    def is_ancestor_of(self, ancestor_id: str, area_id: str) -> bool:
        if ancestor_id == area_id:
            return False
        return ancestor_id in self.path_to_root(area_id)

    def child_ids(self, area_id: str) -> List[str]:
        return list(self._children.get(area_id, ()))

    def children_of(self, area_id: str) -> List[GeographicArea]:
        """Direct children ordered by name."""
        self.area(area_id)
        return [self._areas[c] for c in self._children.get(area_id, ())]

    def child_count(self, area_id: str) -> int:
        return len(self._children.get(area_id, ()))

    def descendants_of(self, area_ids: Iterable[str]) -> Set[str]:
        """Union of strict descendants of every input ID.

        Input IDs are never part of the result, even when one is a
        descendant of another input. Unknown IDs contribute nothing.
        """
        roots = set(area_ids)
        result: Set[str] = set()
        queue = deque(a for a in roots if a in self._areas)
        visited = set(queue)

        while queue:
            current = queue.popleft()
            for child_id in self._children.get(current, ()):
                if child_id in visited:
                    continue
                visited.add(child_id)
                result.add(child_id)
                queue.append(child_id)

        return result - roots
