"""Partition channels into shared-topic groups and independent channels."""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from core.models import Channel


@dataclass(slots=True)
class Partition:
    groups: dict[str, list[Channel]] = field(default_factory=dict)
    independents: list[Channel] = field(default_factory=list)

    def units(self) -> Iterator[tuple[str, list[Channel]]]:
        """Processing units: every group, then each independent channel alone."""
        yield from self.groups.items()
        for channel in self.independents:
            yield channel.id, [channel]


def partition(channels: Iterable[Channel]) -> Partition:
    result = Partition()
    for channel in channels:
        if channel.group_id:
            result.groups.setdefault(channel.group_id, []).append(channel)
        else:
            result.independents.append(channel)
    return result
