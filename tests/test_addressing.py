import ipaddress

import pytest

from hostsweep.addressing import AddressRange, RangeError, expand_range, parse_address


@pytest.mark.parametrize("start,end", [
    ("10.0.0.1", "10.0.0.1"),
    ("10.0.0.1", "10.0.0.3"),
    ("192.168.0.250", "192.168.1.5"),
    ("0.0.0.0", "0.0.1.0"),
    ("255.255.255.250", "255.255.255.255"),
])
def test_expansion_is_complete_strictly_increasing_and_unique(start, end):
    addresses = list(expand_range(start, end))
    expected = int(ipaddress.IPv4Address(end)) - int(ipaddress.IPv4Address(start)) + 1

    assert len(addresses) == expected
    assert len(set(addresses)) == expected
    assert all(a < b for a, b in zip(addresses, addresses[1:]))
    assert addresses[0] == ipaddress.IPv4Address(start)
    assert addresses[-1] == ipaddress.IPv4Address(end)


def test_single_address_range_yields_one_address():
    assert list(expand_range("10.0.0.1", "10.0.0.1")) == [ipaddress.IPv4Address("10.0.0.1")]


def test_inverted_range_fails_before_iteration():
    with pytest.raises(RangeError):
        expand_range("10.0.0.3", "10.0.0.1")


def test_range_error_is_a_value_error():
    with pytest.raises(ValueError):
        AddressRange("10.0.1.0", "10.0.0.255")


def test_range_is_restartable_and_sized():
    address_range = AddressRange("172.16.0.254", "172.16.1.2")
    assert len(address_range) == 5
    assert list(address_range) == list(address_range)


def test_ordering_follows_integer_value_not_text():
    addresses = [str(a) for a in AddressRange("10.0.0.8", "10.0.0.11")]
    assert addresses == ["10.0.0.8", "10.0.0.9", "10.0.0.10", "10.0.0.11"]


def test_accepts_integers_and_address_objects():
    address_range = AddressRange(167772161, ipaddress.IPv4Address("10.0.0.2"))
    assert [str(a) for a in address_range] == ["10.0.0.1", "10.0.0.2"]


@pytest.mark.parametrize("value", ["10.0.0", "10.0.0.256", "host.example", "fe80::1", ""])
def test_invalid_addresses_are_rejected(value):
    with pytest.raises(ValueError):
        parse_address(value)


def test_from_network_covers_usable_hosts():
    address_range = AddressRange.from_network(ipaddress.IPv4Network("192.168.10.0/24"))
    assert str(address_range.start) == "192.168.10.1"
    assert str(address_range.end) == "192.168.10.254"
    assert len(address_range) == 254


def test_from_network_single_host():
    address_range = AddressRange.from_network(ipaddress.IPv4Network("10.1.2.3/32"))
    assert list(address_range) == [ipaddress.IPv4Address("10.1.2.3")]


def test_membership():
    address_range = AddressRange("10.0.0.1", "10.0.0.3")
    assert "10.0.0.2" in address_range
    assert "10.0.0.4" not in address_range
    assert "not-an-address" not in address_range
