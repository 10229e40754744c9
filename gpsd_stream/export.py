"""Export collected reports to pandas DataFrames.

Reports are not stored by the session; callers that want a track or a
satellite history collect them in a subscriber and convert afterwards:

    fixes = []
    session.subscribe("TPV", fixes.append)
    ...
    df = tpv_to_dataframe(fixes)
"""

from typing import Iterable

from .parser import encode
from .reports import Report


def _pandas():
    try:
        import pandas as pd
    except ImportError:
        raise ImportError("pandas is required for DataFrame export. Install with: pip install pandas")
    return pd


def tpv_to_dataframe(reports: Iterable[Report]):
    """One row per TPV report; other classes are ignored."""
    pd = _pandas()

    records = []
    for r in reports:
        if r.report_class != "TPV":
            continue
        records.append({
            'time': r.time,
            'device': r.device,
            'mode': int(r.mode),
            'lat': r.lat,
            'lon': r.lon,
            'alt': r.alt,
            'speed': r.speed,
            'track': r.track,
            'climb': r.climb,
            'epx': r.epx,
            'epy': r.epy,
            'epv': r.epv,
            'eph': r.eph,
        })
    return pd.DataFrame(records, columns=[
        'time', 'device', 'mode', 'lat', 'lon', 'alt', 'speed', 'track',
        'climb', 'epx', 'epy', 'epv', 'eph',
    ])


def satellites_to_dataframe(reports: Iterable[Report]):
    """One row per satellite per SKY report."""
    pd = _pandas()

    records = []
    for r in reports:
        if r.report_class != "SKY":
            continue
        for sat in r.satellites:
            records.append({
                'time': r.time,
                'device': r.device,
                'prn': sat.prn,
                'gnssid': sat.gnssid,
                'svid': sat.svid,
                'az': sat.az,
                'el': sat.el,
                'ss': sat.ss,
                'used': sat.used,
            })
    return pd.DataFrame(records, columns=[
        'time', 'device', 'prn', 'gnssid', 'svid', 'az', 'el', 'ss', 'used',
    ])


def reports_to_dataframe(reports: Iterable[Report]):
    """Flat table of reports of any class, using the gpsd field names.

    Nested lists (satellites, devices) are reduced to their length.
    """
    pd = _pandas()

    records = []
    for r in reports:
        row = encode(r)
        for key in ('satellites', 'devices'):
            if key in row:
                row[key] = len(row[key])
        records.append(row)
    return pd.DataFrame(records)
