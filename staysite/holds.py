# Exclusionary holds over a date interval: admin blocks and CONFIRMED reservations.
# A hold targets either one room or every room of a property; the nullable room_id
# column is mapped to an explicit scope here so each consumer handles both cases.
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Union

from . import models


@dataclass(frozen=True)
class RoomScope:
    room_id: int


@dataclass(frozen=True)
class PropertyWide:
    property_id: int


HoldScope = Union[RoomScope, PropertyWide]


@dataclass(frozen=True)
class Hold:
    scope: HoldScope
    start: date
    end: date
    kind: str  # "block" | "reservation"
    source_id: Optional[int] = None


def scope_for(room_id: Optional[int], property_id: int) -> HoldScope:
    if room_id is None:
        return PropertyWide(property_id)
    return RoomScope(room_id)


def hold_from_block(block: models.AvailabilityBlock) -> Hold:
    return Hold(
        scope=scope_for(block.room_id, block.property_id),
        start=block.start_date,
        end=block.end_date,
        kind="block",
        source_id=block.id,
    )


def hold_from_reservation(reservation: models.Reservation) -> Hold:
    return Hold(
        scope=scope_for(reservation.room_id, reservation.property_id),
        start=reservation.check_in_date,
        end=reservation.check_out_date,
        kind="reservation",
        source_id=reservation.id,
    )


def target_rooms(scope: HoldScope, rooms_by_property: Dict[int, Sequence[int]]) -> List[int]:
    """Room ids a hold applies to, among the rooms known to the caller."""
    if isinstance(scope, RoomScope):
        return [scope.room_id]
    if isinstance(scope, PropertyWide):
        return list(rooms_by_property.get(scope.property_id, ()))
    raise TypeError(f"Unknown hold scope: {scope!r}")


def applies_to_room(scope: HoldScope, room_id: int, property_id: int) -> bool:
    if isinstance(scope, RoomScope):
        return scope.room_id == room_id
    if isinstance(scope, PropertyWide):
        return scope.property_id == property_id
    raise TypeError(f"Unknown hold scope: {scope!r}")


def group_rooms_by_property(rooms: Iterable[models.Room]) -> Dict[int, List[int]]:
    grouped: Dict[int, List[int]] = {}
    for room in rooms:
        grouped.setdefault(room.property_id, []).append(room.id)
    return grouped
