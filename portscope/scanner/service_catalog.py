"""Static port -> service label table for well-known TCP services."""

from typing import Dict, List

UNRECOGNIZED = "Unknown"

SERVICES: Dict[int, str] = {
    7: "Echo",
    20: "FTP-Data",
    21: "FTP",
    22: "SSH",
    23: "Telnet",
    25: "SMTP",
    37: "Time",
    43: "WHOIS",
    53: "DNS",
    69: "TFTP",
    79: "Finger",
    80: "HTTP",
    88: "Kerberos",
    110: "POP3",
    111: "RPCBind",
    113: "Ident",
    119: "NNTP",
    123: "NTP",
    135: "MS-RPC",
    137: "NetBIOS-NS",
    138: "NetBIOS-DGM",
    139: "NetBIOS-SSN",
    143: "IMAP",
    161: "SNMP",
    162: "SNMP-Trap",
    179: "BGP",
    194: "IRC",
    389: "LDAP",
    443: "HTTPS",
    445: "SMB",
    465: "SMTPS",
    500: "ISAKMP",
    514: "Syslog",
    515: "LPD",
    543: "Kerberos-Login",
    554: "RTSP",
    587: "SMTP-Submission",
    631: "IPP",
    636: "LDAPS",
    873: "Rsync",
    990: "FTPS",
    993: "IMAPS",
    995: "POP3S",
    1080: "SOCKS",
    1194: "OpenVPN",
    1433: "MSSQL",
    1521: "Oracle",
    1723: "PPTP",
    1883: "MQTT",
    2049: "NFS",
    2181: "ZooKeeper",
    2375: "Docker",
    2376: "Docker-TLS",
    3000: "Dev-HTTP",
    3128: "Squid",
    3306: "MySQL",
    3389: "RDP",
    3690: "SVN",
    4369: "EPMD",
    5000: "UPnP",
    5060: "SIP",
    5432: "PostgreSQL",
    5601: "Kibana",
    5672: "AMQP",
    5900: "VNC",
    5984: "CouchDB",
    5985: "WinRM",
    5986: "WinRM-HTTPS",
    6379: "Redis",
    6443: "Kubernetes-API",
    6667: "IRC",
    8000: "HTTP-Alt",
    8008: "HTTP-Alt",
    8080: "HTTP-Proxy",
    8081: "HTTP-Alt",
    8443: "HTTPS-Alt",
    8888: "HTTP-Alt",
    9000: "SonarQube",
    9090: "Prometheus",
    9092: "Kafka",
    9200: "Elasticsearch",
    9300: "Elasticsearch-Transport",
    9418: "Git",
    11211: "Memcached",
    15672: "RabbitMQ-Mgmt",
    27017: "MongoDB",
    27018: "MongoDB-Shard",
    50000: "SAP",
}


def lookup(port: int) -> str:
    """Service label for ``port``, or ``UNRECOGNIZED``."""
    return SERVICES.get(port, UNRECOGNIZED)


def is_recognized(port: int) -> bool:
    return port in SERVICES


def known_ports() -> List[int]:
    return sorted(SERVICES)
