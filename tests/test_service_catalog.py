import pytest

from portscope.scanner import service_catalog
from portscope.scanner.service_catalog import UNRECOGNIZED, is_recognized, known_ports, lookup


@pytest.mark.parametrize("port, label", [
    (21, "FTP"),
    (22, "SSH"),
    (25, "SMTP"),
    (53, "DNS"),
    (80, "HTTP"),
    (443, "HTTPS"),
    (3306, "MySQL"),
    (5432, "PostgreSQL"),
    (6379, "Redis"),
    (27017, "MongoDB"),
])
def test_well_known_ports(port, label):
    assert lookup(port) == label
    assert is_recognized(port)


def test_unknown_port_returns_sentinel():
    assert lookup(65000) == UNRECOGNIZED
    assert UNRECOGNIZED == "Unknown"
    assert not is_recognized(65000)


def test_catalog_size_and_ordering():
    ports = known_ports()
    assert 60 <= len(ports) <= 90
    assert ports == sorted(service_catalog.SERVICES)
