"""Report types decoded from the gpsd JSON stream.

Every record gpsd emits carries a ``class`` tag naming its schema. This
module defines one immutable dataclass per supported class. Field names
are the gpsd JSON names in snake_case; where the wire name differs (for
example ``PRN``) the dataclass field carries it in ``metadata["wire"]``.

Missing fields decode to the zero value of their type: ``""`` for text,
``0``/``0.0`` for numbers, ``False`` for flags, ``None`` for timestamps
and an empty tuple for nested lists.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Dict, Optional, Tuple, Type, Union


class Mode(IntEnum):
    """NMEA fix mode reported in TPV records."""
    NO_VALUE_SEEN = 0
    NO_FIX = 1
    MODE_2D = 2
    MODE_3D = 3


@dataclass(frozen=True)
class Satellite:
    """One entry of the ``satellites`` list of a SKY report.

    Attributes:
        prn: PRN ID of the satellite (wire name ``PRN``)
        az: Azimuth in degrees from true north
        el: Elevation in degrees
        ss: Signal to noise ratio in dBHz
        used: Whether the satellite is used in the current solution
        gnssid: GNSS constellation ID
        svid: Satellite ID within its constellation
        sigid: Signal ID
        freqid: GLONASS frequency ID
        health: Satellite health (0 unknown, 1 ok, 2 unhealthy)
    """

    prn: float = field(default=0.0, metadata={"wire": "PRN"})
    az: float = 0.0
    el: float = 0.0
    ss: float = 0.0
    used: bool = False
    gnssid: int = 0
    svid: int = 0
    sigid: int = 0
    freqid: int = 0
    health: int = 0


@dataclass(frozen=True)
class VersionReport:
    """Sent by the daemon on connect and in reply to ``?VERSION;``."""

    release: str = ""
    rev: str = ""
    proto_major: int = 0
    proto_minor: int = 0
    remote: str = ""
    report_class: str = field(default="VERSION", repr=False)


@dataclass(frozen=True)
class TPVReport:
    """Time-position-velocity fix.

    Error estimates (the ``ep*`` fields) are 95% confidence values in the
    unit of the matching measurement.
    """

    tag: str = ""
    device: str = ""
    mode: Mode = Mode.NO_VALUE_SEEN
    time: Optional[datetime] = None
    ept: float = 0.0
    lat: float = 0.0
    lon: float = 0.0
    alt: float = 0.0
    epx: float = 0.0
    epy: float = 0.0
    epv: float = 0.0
    track: float = 0.0
    speed: float = 0.0
    climb: float = 0.0
    epd: float = 0.0
    eps: float = 0.0
    epc: float = 0.0
    eph: float = 0.0
    report_class: str = field(default="TPV", repr=False)

    @property
    def has_fix(self) -> bool:
        """Whether the receiver reported at least a 2D fix."""
        return self.mode >= Mode.MODE_2D


@dataclass(frozen=True)
class SKYReport:
    """Sky view: dilution of precision and the list of visible satellites."""

    tag: str = ""
    device: str = ""
    time: Optional[datetime] = None
    xdop: float = 0.0
    ydop: float = 0.0
    vdop: float = 0.0
    tdop: float = 0.0
    hdop: float = 0.0
    pdop: float = 0.0
    gdop: float = 0.0
    satellites: Tuple[Satellite, ...] = ()
    report_class: str = field(default="SKY", repr=False)

    @property
    def satellites_used(self) -> int:
        """Number of satellites used in the navigation solution."""
        return sum(1 for sat in self.satellites if sat.used)


@dataclass(frozen=True)
class GSTReport:
    """Pseudorange noise report."""

    tag: str = ""
    device: str = ""
    time: Optional[datetime] = None
    rms: float = 0.0
    major: float = 0.0
    minor: float = 0.0
    orient: float = 0.0
    lat: float = 0.0
    lon: float = 0.0
    alt: float = 0.0
    report_class: str = field(default="GST", repr=False)


@dataclass(frozen=True)
class ATTReport:
    """Vehicle attitude from a digital compass or gyroscope."""

    tag: str = ""
    device: str = ""
    time: Optional[datetime] = None
    heading: float = 0.0
    mag_st: str = ""
    pitch: float = 0.0
    pitch_st: str = ""
    yaw: float = 0.0
    yaw_st: str = ""
    roll: float = 0.0
    roll_st: str = ""
    dip: float = 0.0
    mag_len: float = 0.0
    mag_x: float = 0.0
    mag_y: float = 0.0
    mag_z: float = 0.0
    acc_len: float = 0.0
    acc_x: float = 0.0
    acc_y: float = 0.0
    acc_z: float = 0.0
    gyro_x: float = 0.0
    gyro_y: float = 0.0
    depth: float = 0.0
    temperature: float = 0.0
    report_class: str = field(default="ATT", repr=False)


@dataclass(frozen=True)
class DeviceReport:
    """State of one device attached to the daemon."""

    path: str = ""
    activated: Optional[datetime] = None
    flags: int = 0
    driver: str = ""
    subtype: str = ""
    bps: int = 0
    parity: str = ""
    stopbits: int = 0
    native: int = 0
    cycle: float = 0.0
    mincycle: float = 0.0
    report_class: str = field(default="DEVICE", repr=False)


@dataclass(frozen=True)
class DevicesReport:
    """List of all devices the daemon knows about."""

    devices: Tuple[DeviceReport, ...] = ()
    remote: str = ""
    report_class: str = field(default="DEVICES", repr=False)


@dataclass(frozen=True)
class PPSReport:
    """Pulse-per-second timing report.

    Newer daemons send nanosecond fields; older ones send microseconds.
    Both are kept as received.
    """

    device: str = ""
    real_sec: int = 0
    real_nsec: int = 0
    real_musec: int = 0
    clock_sec: int = 0
    clock_nsec: int = 0
    clock_musec: int = 0
    precision: int = 0
    report_class: str = field(default="PPS", repr=False)


@dataclass(frozen=True)
class ErrorReport:
    """Error reported by the daemon, typically for a malformed command."""

    message: str = ""
    report_class: str = field(default="ERROR", repr=False)


# Type alias for all report types
Report = Union[
    VersionReport,
    TPVReport,
    SKYReport,
    GSTReport,
    ATTReport,
    DevicesReport,
    DeviceReport,
    PPSReport,
    ErrorReport,
]


# Closed table of recognised class tags
REPORT_TYPES: Dict[str, Type] = {
    "VERSION": VersionReport,
    "TPV": TPVReport,
    "SKY": SKYReport,
    "GST": GSTReport,
    "ATT": ATTReport,
    "DEVICES": DevicesReport,
    "DEVICE": DeviceReport,
    "PPS": PPSReport,
    "ERROR": ErrorReport,
}
