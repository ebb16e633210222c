"""
IP range parsing for scan passes

A range is a contiguous slice of addresses that share their first three
octets, encoded canonically as "a.b.c.start-end" (e.g. "10.0.81.0-255").
"""
from dataclasses import dataclass
from typing import Dict, Iterator, List, Tuple, Union


class RangeError(ValueError):
    """Base class for range validation errors"""
    pass


class MalformedAddress(RangeError):
    """Address is not a well-formed dotted quad"""
    pass


class SubnetMismatch(RangeError):
    """Start and end addresses differ in their first three octets"""
    pass


class OrderingError(RangeError):
    """Start address comes after end address"""
    pass


def _parse_octet(value: str) -> int:
    if not value.isdigit():
        raise ValueError(value)
    octet = int(value)
    if octet > 255:
        raise ValueError(value)
    return octet


def _split_address(address: str, label: str) -> List[int]:
    """Split a dotted quad into four octets or raise MalformedAddress"""
    parts = address.strip().split('.')
    if len(parts) != 4:
        raise MalformedAddress(f"Invalid {label} IP address: {address!r}")
    try:
        return [_parse_octet(part) for part in parts]
    except ValueError:
        raise MalformedAddress(f"Invalid {label} IP address: {address!r}")


@dataclass(frozen=True)
class IPRange:
    """Immutable address slice within one /24"""
    prefix: str  # first three octets, e.g. "10.0.81"
    start: int
    end: int

    def __str__(self) -> str:
        return f"{self.prefix}.{self.start}-{self.end}"

    def __len__(self) -> int:
        return self.end - self.start + 1

    @property
    def start_ip(self) -> str:
        return f"{self.prefix}.{self.start}"

    @property
    def end_ip(self) -> str:
        return f"{self.prefix}.{self.end}"

    def addresses(self) -> Iterator[str]:
        """Yield every address in the range in ascending order"""
        for octet in range(self.start, self.end + 1):
            yield f"{self.prefix}.{octet}"

    @classmethod
    def from_string(cls, encoded: str) -> 'IPRange':
        """Decode the canonical "a.b.c.start-end" form"""
        head, sep, end = encoded.strip().rpartition('-')
        if not sep:
            raise MalformedAddress(f"Invalid range encoding: {encoded!r}")
        start_ip = head
        end_ip = f"{head.rpartition('.')[0]}.{end}"
        return parse_ip_range(start_ip, end_ip)


def parse_ip_range(start: str, end: str) -> IPRange:
    """
    Validate a start/end address pair and build a range

    Args:
        start: First address, e.g. "10.0.81.0"
        end: Last address, e.g. "10.0.81.255"

    Returns:
        IPRange covering start..end inclusive

    Raises:
        MalformedAddress: either address is not a valid dotted quad
        SubnetMismatch: first three octets differ
        OrderingError: start's last octet exceeds end's
    """
    start_parts = _split_address(start, "start")
    end_parts = _split_address(end, "end")

    if start_parts[:3] != end_parts[:3]:
        raise SubnetMismatch(
            "IP ranges must be in the same subnet (first 3 octets must match)"
        )

    if start_parts[3] > end_parts[3]:
        raise OrderingError("Start IP must be less than or equal to end IP")

    prefix = '.'.join(str(octet) for octet in start_parts[:3])
    return IPRange(prefix=prefix, start=start_parts[3], end=end_parts[3])


def calculate_total_ips(ip_range: Union[IPRange, str]) -> int:
    """Number of addresses in a range, 0 if the encoding can't be parsed"""
    if isinstance(ip_range, IPRange):
        return len(ip_range)

    head, sep, end = str(ip_range).rpartition('-')
    if not sep:
        return 0
    start = head.rpartition('.')[2]
    try:
        start_octet = _parse_octet(start)
        end_octet = _parse_octet(end)
    except ValueError:
        return 0
    if end_octet < start_octet:
        return 0
    return end_octet - start_octet + 1


@dataclass
class SavedRange:
    """Operator-named range persisted in the configuration store"""
    name: str
    range: str

    def endpoints(self) -> Tuple[str, str]:
        """Split the stored encoding back into start and end addresses"""
        ip_range = IPRange.from_string(self.range)
        return ip_range.start_ip, ip_range.end_ip

    def to_dict(self) -> Dict:
        return {'name': self.name, 'range': self.range}

    @classmethod
    def from_dict(cls, data: Dict) -> 'SavedRange':
        return cls(name=str(data['name']), range=str(data['range']))
