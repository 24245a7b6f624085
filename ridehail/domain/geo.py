"""
GeoIndex -- nearest-neighbour lookup over points
=================================================

Points (online drivers or waiting ride requests) are binned into H3
hexagons.  A radius query only looks at the cells of the k-ring that
covers the search circle, then ranks candidates by exact haversine
distance.  Ties are broken by the lowest id so results are
deterministic.

Ring size
---------
Centres of cells k rings apart are at least ``1.5 x edge`` km from each
other per ring, and any point lies within ``edge`` km of its cell
centre, so ``k = ceil((r + edge) / (1.5 x edge)) + 1`` rings cover a
circle of radius r.

Complexity: O(cells in ring + candidates x log candidates) per query;
unbounded queries fall back to a linear scan.
"""

from __future__ import annotations

import math
from collections import defaultdict
from typing import Any, Callable, Hashable, NamedTuple, Optional

import h3

from .distance import haversine_km


class GeoHit(NamedTuple):
    distance_km: float
    id: Hashable
    item: Any


class _Entry(NamedTuple):
    id: Hashable
    lat: float
    lng: float
    item: Any


def point_cell(lat: float, lng: float, resolution: int = 7) -> str:
    """Map a geo-point to an H3 hexagonal cell index.  O(1)."""
    return h3.latlng_to_cell(lat, lng, resolution)


def ring_size(radius_km: float, resolution: int) -> int:
    edge = h3.average_hexagon_edge_length(resolution, unit="km")
    return math.ceil((radius_km + edge) / (1.5 * edge)) + 1


class GeoIndex:
    def __init__(self, resolution: int = 7):
        self.resolution = resolution
        self._cells: dict[str, list[_Entry]] = defaultdict(list)
        self._size = 0

    def __len__(self) -> int:
        return self._size

    def add(self, item_id: Hashable, lat: float, lng: float, item: Any = None) -> None:
        cell = point_cell(lat, lng, self.resolution)
        self._cells[cell].append(_Entry(item_id, lat, lng, item))
        self._size += 1

    def within(
        self,
        lat: float,
        lng: float,
        radius_km: Optional[float] = None,
        predicate: Optional[Callable[[Any], bool]] = None,
    ) -> list[GeoHit]:
        """All matching points within *radius_km*, nearest first."""
        hits = []
        for entry in self._candidates(lat, lng, radius_km):
            if predicate is not None and not predicate(entry.item):
                continue
            d = haversine_km(lat, lng, entry.lat, entry.lng)
            if radius_km is not None and d > radius_km:
                continue
            hits.append(GeoHit(d, entry.id, entry.item))
        hits.sort(key=lambda h: (h.distance_km, h.id))
        return hits

    def nearest(
        self,
        lat: float,
        lng: float,
        radius_km: Optional[float] = None,
        predicate: Optional[Callable[[Any], bool]] = None,
    ) -> Optional[GeoHit]:
        hits = self.within(lat, lng, radius_km, predicate)
        return hits[0] if hits else None

    def _candidates(self, lat: float, lng: float, radius_km: Optional[float]):
        if radius_km is None:
            return self._all()
        k = ring_size(radius_km, self.resolution)
        # 3k(k+1)+1 cells in the disk; scanning is cheaper for small indexes
        if 3 * k * (k + 1) + 1 >= self._size:
            return self._all()
        origin = point_cell(lat, lng, self.resolution)
        return [
            entry
            for cell in h3.grid_disk(origin, k)
            for entry in self._cells.get(cell, ())
        ]

    def _all(self) -> list[_Entry]:
        return [entry for entries in self._cells.values() for entry in entries]
