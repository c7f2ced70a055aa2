"""
Handles parsing of IPv4 addresses and expansion of address ranges.
"""
from __future__ import annotations
import ipaddress
from typing import Iterator, Union

AddressLike = Union[str, int, ipaddress.IPv4Address]


class RangeError(ValueError):
    """Raised when a range's start address is greater than its end address."""


def parse_address(value: AddressLike) -> ipaddress.IPv4Address:
    """Parses a dotted-quad string, integer or IPv4Address into an IPv4Address."""
    if isinstance(value, ipaddress.IPv4Address):
        return value
    if isinstance(value, str):
        value = value.strip()
    try:
        return ipaddress.IPv4Address(value)
    except (ipaddress.AddressValueError, ValueError, TypeError):
        raise ValueError(f"'{value}' is not a valid IPv4 address.")


class AddressRange:
    """
    An inclusive, validated range of IPv4 addresses.

    Iteration is lazy and can be repeated; every pass yields the same strictly
    increasing sequence.
    """

    __slots__ = ("start", "end")

    def __init__(self, start: AddressLike, end: AddressLike):
        start_addr = parse_address(start)
        end_addr = parse_address(end)
        if start_addr > end_addr:
            raise RangeError(f"Start address {start_addr} is greater than end address {end_addr}.")
        self.start = start_addr
        self.end = end_addr

    @classmethod
    def from_network(cls, network: ipaddress.IPv4Network) -> "AddressRange":
        """Builds the range of usable host addresses in a subnet."""
        if network.num_addresses <= 2:
            return cls(network.network_address, network.broadcast_address)
        return cls(network.network_address + 1, network.broadcast_address - 1)

    def __iter__(self) -> Iterator[ipaddress.IPv4Address]:
        for value in range(int(self.start), int(self.end) + 1):
            yield ipaddress.IPv4Address(value)

    def __len__(self) -> int:
        return int(self.end) - int(self.start) + 1

    def __contains__(self, item: object) -> bool:
        try:
            address = parse_address(item)  # type: ignore[arg-type]
        except ValueError:
            return False
        return self.start <= address <= self.end

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AddressRange):
            return NotImplemented
        return (self.start, self.end) == (other.start, other.end)

    def __hash__(self) -> int:
        return hash((self.start, self.end))

    def __repr__(self) -> str:
        return f"AddressRange({str(self.start)!r}, {str(self.end)!r})"


def expand_range(start: AddressLike, end: AddressLike) -> Iterator[ipaddress.IPv4Address]:
    """Returns an iterator over every address from start to end inclusive.

    The range is validated before the iterator is returned, so an inverted
    range fails here rather than on first use.
    """
    return iter(AddressRange(start, end))
