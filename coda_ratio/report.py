"""
Spectral ratio reports and their compacted transport form.

``SpectraRatiosReport`` nests measurements as
``EventPair -> Station -> FrequencyBand -> SpectraRatioPairDetails``.
``SpectraRatiosReportDTO`` replaces every entity key with a small integer from
an ``InterningTable`` and keeps side maps back to the entities, so each
event pair, station and band is written once however many ratios share it.
"""
import logging
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Generic, Hashable, List, Mapping, Optional, TypeVar

import numpy as np

from .model import (
    Event,
    EventPair,
    FrequencyBand,
    SpectraRatioPairDetails,
    SpectraRatioPairInversionResult,
    SpectraRatioPairInversionResultJoint,
    Station,
    Waveform,
    as_timestamp,
)

logger = logging.getLogger(__name__)

RatioData = Dict[EventPair, Dict[Station, Dict[FrequencyBand, SpectraRatioPairDetails]]]
KeyedData = Dict[int, Dict[int, Dict[int, SpectraRatioPairDetails]]]

T = TypeVar("T", bound=Hashable)


# ----- report -----
class SpectraRatiosReport:
    """Ratio measurements for many event pairs plus per-pair inversion estimates."""

    def __init__(self, data: Optional[RatioData] = None,
                 inversion_estimates: Optional[Dict[EventPair, SpectraRatioPairInversionResult]] = None,
                 joint_inversion_estimates: Optional[Dict[EventPair, SpectraRatioPairInversionResultJoint]] = None):
        self.data: RatioData = data if data is not None else {}
        self.inversion_estimates = inversion_estimates if inversion_estimates is not None else {}
        self.joint_inversion_estimates = joint_inversion_estimates if joint_inversion_estimates is not None else {}

    def add(self, details: SpectraRatioPairDetails) -> "SpectraRatiosReport":
        """File ``details`` under its own event pair, station and band (replacing any previous entry)."""
        numer, denom = details.numer_waveform, details.denom_waveform
        if numer is None or denom is None:
            raise ValueError("Ratio details need both a numerator and a denominator waveform")
        if numer.event is None or denom.event is None or numer.station is None:
            raise ValueError(f"Ratio details for waveform {numer.id} have no event or station")

        pair = EventPair(y=denom.event, x=numer.event)
        self.data.setdefault(pair, {}).setdefault(numer.station, {})[numer.frequency_band] = details
        return self

    def set_data(self, data: RatioData) -> "SpectraRatiosReport":
        self.data = data
        return self

    def set_inversion_estimates(self, estimates: Dict[EventPair, SpectraRatioPairInversionResult]) -> "SpectraRatiosReport":
        self.inversion_estimates = estimates
        return self

    def set_joint_inversion_estimates(self, estimates: Dict[EventPair, SpectraRatioPairInversionResultJoint]) -> "SpectraRatiosReport":
        self.joint_inversion_estimates = estimates
        return self

    def iter_ratios(self):
        """Yield ``(event_pair, station, band, details)`` for every measurement."""
        for pair, stations in self.data.items():
            for station, bands in stations.items():
                for band, details in bands.items():
                    yield pair, station, band, details

    def __len__(self):
        return sum(len(bands) for stations in self.data.values() for bands in stations.values())

    def __eq__(self, other):
        if not isinstance(other, SpectraRatiosReport):
            return NotImplemented
        return (
            self.data == other.data
            and self.inversion_estimates == other.inversion_estimates
            and self.joint_inversion_estimates == other.joint_inversion_estimates
        )

    __hash__ = None

    def __repr__(self):
        return (
            f"SpectraRatiosReport(event_pairs={len(self.data)}, ratios={len(self)}, "
            f"inversions={len(self.inversion_estimates)}, "
            f"joint_inversions={len(self.joint_inversion_estimates)})"
        )


class SpectraRatiosReportByEventPair:
    """Read-mostly view of a report organised around its event pairs."""

    def __init__(self, report: Optional[SpectraRatiosReport] = None):
        self.report = report if report is not None else SpectraRatiosReport()

    def get_event_pairs(self) -> List[EventPair]:
        return list(self.report.data.keys())

    def get_stations_for_event_pair(self, event_pair: EventPair) -> List[Station]:
        return list(self.report.data.get(event_pair, {}).keys())

    def get_ratios_list(self, event_pair: EventPair) -> List[SpectraRatioPairDetails]:
        stations = self.report.data.get(event_pair, {})
        return [details for bands in stations.values() for details in bands.values()]

    def get_inversion_results(self) -> Dict[EventPair, SpectraRatioPairInversionResult]:
        return self.report.inversion_estimates

    def get_joint_inversion_results(self) -> Dict[EventPair, SpectraRatioPairInversionResultJoint]:
        return self.report.joint_inversion_estimates

    def set_inversion_results(self, estimates) -> "SpectraRatiosReportByEventPair":
        self.report.set_inversion_estimates(estimates)
        return self

    def set_joint_inversion_results(self, estimates) -> "SpectraRatiosReportByEventPair":
        self.report.set_joint_inversion_estimates(estimates)
        return self

    def set_ratios_report_by_event_pair(self, data: RatioData) -> "SpectraRatiosReportByEventPair":
        self.report.set_data(data)
        return self


# ----- interning -----
class InterningTable(Generic[T]):
    """
    Entity <-> integer key table. Keys are handed out sequentially from 0 in
    first-seen order, so two distinct entities never share a key.
    """

    def __init__(self):
        self._keys: Dict[T, int] = {}
        self._entities: Dict[int, T] = {}

    @classmethod
    def from_mapping(cls, mapping: Mapping[int, T], kind: str = "entity") -> "InterningTable[T]":
        """
        Rebuild a table from an existing ``key -> entity`` map.

        Raises
        ------
        ValueError
            If two keys name the same entity.
        """
        table = cls()
        for key, entity in mapping.items():
            key = int(key)
            if key in table._entities and table._entities[key] != entity:
                raise ValueError(f"{kind} key {key} maps to both {table._entities[key]!r} and {entity!r}")
            if entity in table._keys and table._keys[entity] != key:
                raise ValueError(f"{kind} {entity!r} is bound to keys {table._keys[entity]} and {key}")
            table._keys[entity] = key
            table._entities[key] = entity
        return table

    def intern(self, entity: T) -> int:
        key = self._keys.get(entity)
        if key is None:
            key = len(self._entities)
            while key in self._entities:
                key += 1
            self._keys[entity] = key
            self._entities[key] = entity
        return key

    def lookup(self, key: int) -> T:
        return self._entities[key]

    def as_dict(self) -> Dict[int, T]:
        return dict(self._entities)

    def __contains__(self, entity):
        return entity in self._keys

    def __len__(self):
        return len(self._entities)


# ----- compacted form -----
@dataclass
class SpectraRatiosReportDTO:
    """
    Integer-keyed report. ``data`` is ``event key -> station key -> band key
    -> details``; ``event_map``, ``station_map`` and ``band_map`` resolve the
    keys. Inversion maps are keyed by event key.

    Raises
    ------
    ValueError
        If a side map binds one entity to two keys, or ``data`` or an
        inversion map uses a key missing from its side map.
    """
    data: KeyedData = field(default_factory=dict)
    event_map: Dict[int, EventPair] = field(default_factory=dict)
    station_map: Dict[int, Station] = field(default_factory=dict)
    band_map: Dict[int, FrequencyBand] = field(default_factory=dict)
    inversion_estimates: Dict[int, SpectraRatioPairInversionResult] = field(default_factory=dict)
    joint_inversion_estimates: Dict[int, SpectraRatioPairInversionResultJoint] = field(default_factory=dict)

    def __post_init__(self):
        InterningTable.from_mapping(self.event_map, "event pair")
        InterningTable.from_mapping(self.station_map, "station")
        InterningTable.from_mapping(self.band_map, "band")

        for event_key, stations in self.data.items():
            self._require(event_key, self.event_map, "event pair")
            for station_key, bands in stations.items():
                self._require(station_key, self.station_map, "station")
                for band_key in bands:
                    self._require(band_key, self.band_map, "band")
        for event_key in list(self.inversion_estimates) + list(self.joint_inversion_estimates):
            self._require(event_key, self.event_map, "event pair")

    @staticmethod
    def _require(key: int, side_map: Mapping[int, Any], kind: str):
        if key not in side_map:
            raise ValueError(f"Unknown {kind} key {key}")

    @classmethod
    def from_report(cls, report: SpectraRatiosReport) -> "SpectraRatiosReportDTO":
        events: InterningTable[EventPair] = InterningTable()
        stations: InterningTable[Station] = InterningTable()
        bands: InterningTable[FrequencyBand] = InterningTable()

        data: KeyedData = {}
        for pair, station, band, details in report.iter_ratios():
            (data.setdefault(events.intern(pair), {})
                 .setdefault(stations.intern(station), {}))[bands.intern(band)] = details

        inversion = {events.intern(pair): est for pair, est in report.inversion_estimates.items()}
        joint = {events.intern(pair): est for pair, est in report.joint_inversion_estimates.items()}

        logger.debug(
            f"Compacted {len(report)} ratios: {len(events)} event pairs, "
            f"{len(stations)} stations, {len(bands)} bands"
        )
        return cls(
            data=data,
            event_map=events.as_dict(),
            station_map=stations.as_dict(),
            band_map=bands.as_dict(),
            inversion_estimates=inversion,
            joint_inversion_estimates=joint,
        )

    def get_report(self) -> SpectraRatiosReport:
        """Expand the integer keys back into the nested entity-keyed report."""
        data: RatioData = {}
        for event_key, stations in self.data.items():
            pair = self.event_map[event_key]
            for station_key, bands in stations.items():
                station = self.station_map[station_key]
                for band_key, details in bands.items():
                    data.setdefault(pair, {}).setdefault(station, {})[self.band_map[band_key]] = details

        return SpectraRatiosReport(
            data=data,
            inversion_estimates={self.event_map[k]: v for k, v in self.inversion_estimates.items()},
            joint_inversion_estimates={self.event_map[k]: v for k, v in self.joint_inversion_estimates.items()},
        )

    # -- JSON-compatible form --
    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": {
                str(ek): {
                    str(sk): {str(bk): _details_to_dict(d) for bk, d in bands.items()}
                    for sk, bands in stations.items()
                }
                for ek, stations in self.data.items()
            },
            "eventMap": {str(k): _event_pair_to_dict(v) for k, v in self.event_map.items()},
            "stationMap": {str(k): _station_to_dict(v) for k, v in self.station_map.items()},
            "bandMap": {str(k): _band_to_dict(v) for k, v in self.band_map.items()},
            "inversionEstimates": {str(k): _plain_dict(v) for k, v in self.inversion_estimates.items()},
            "jointInversionEstimates": {str(k): _plain_dict(v) for k, v in self.joint_inversion_estimates.items()},
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "SpectraRatiosReportDTO":
        """
        Inverse of ``to_dict``.

        Raises
        ------
        ValueError
            If two string keys parse to the same integer, or the side maps
            are inconsistent (see the class docstring).
        """
        data: KeyedData = {}
        for ek, stations in _int_keys(payload.get("data", {}), "event pair").items():
            data[ek] = {}
            for sk, bands in _int_keys(stations, "station").items():
                data[ek][sk] = {
                    bk: _details_from_dict(d) for bk, d in _int_keys(bands, "band").items()
                }

        return cls(
            data=data,
            event_map={k: _event_pair_from_dict(v)
                       for k, v in _int_keys(payload.get("eventMap", {}), "event pair").items()},
            station_map={k: Station(**v)
                         for k, v in _int_keys(payload.get("stationMap", {}), "station").items()},
            band_map={k: FrequencyBand(**v)
                      for k, v in _int_keys(payload.get("bandMap", {}), "band").items()},
            inversion_estimates={k: SpectraRatioPairInversionResult(**v)
                                 for k, v in _int_keys(payload.get("inversionEstimates", {}), "inversion").items()},
            joint_inversion_estimates={k: SpectraRatioPairInversionResultJoint(**v)
                                       for k, v in _int_keys(payload.get("jointInversionEstimates", {}),
                                                             "joint inversion").items()},
        )


def _int_keys(mapping: Mapping[Any, Any], kind: str) -> Dict[int, Any]:
    out: Dict[int, Any] = {}
    for key, value in mapping.items():
        ikey = int(key)
        if ikey in out:
            raise ValueError(f"Duplicate {kind} key {key!r}")
        out[ikey] = value
    return out


# ----- entity (de)serialization -----
def _iso(ts) -> Optional[str]:
    return None if ts is None else ts.isoformat()


def _array(values) -> Optional[List[float]]:
    return None if values is None else np.asarray(values, dtype=float).tolist()


def _plain_dict(obj) -> Dict[str, Any]:
    return {f.name: getattr(obj, f.name) for f in fields(obj)}


def _event_to_dict(event: Optional[Event]) -> Optional[Dict[str, Any]]:
    if event is None:
        return None
    out = _plain_dict(event)
    out["origin_time"] = _iso(event.origin_time)
    return out


def _event_from_dict(payload: Optional[Mapping[str, Any]]) -> Optional[Event]:
    return None if payload is None else Event(**payload)


def _event_pair_to_dict(pair: EventPair) -> Dict[str, Any]:
    return {"y": _event_to_dict(pair.y), "x": _event_to_dict(pair.x)}


def _event_pair_from_dict(payload: Mapping[str, Any]) -> EventPair:
    return EventPair(y=_event_from_dict(payload["y"]), x=_event_from_dict(payload["x"]))


def _station_to_dict(station: Optional[Station]) -> Optional[Dict[str, Any]]:
    return None if station is None else _plain_dict(station)


def _band_to_dict(band: FrequencyBand) -> Dict[str, float]:
    return _plain_dict(band)


def _waveform_to_dict(wf: Optional[Waveform]) -> Optional[Dict[str, Any]]:
    if wf is None:
        return None
    out = _plain_dict(wf)
    out["segment"] = _array(wf.segment)
    out["begin_time"] = _iso(wf.begin_time)
    out["end_time"] = _iso(wf.end_time)
    out["event"] = _event_to_dict(wf.event)
    out["station"] = _station_to_dict(wf.station)
    return out


def _waveform_from_dict(payload: Optional[Mapping[str, Any]]) -> Optional[Waveform]:
    if payload is None:
        return None
    kwargs = dict(payload)
    kwargs["begin_time"] = as_timestamp(kwargs.get("begin_time"))
    kwargs["end_time"] = as_timestamp(kwargs.get("end_time"))
    kwargs["event"] = _event_from_dict(kwargs.get("event"))
    station = kwargs.get("station")
    kwargs["station"] = None if station is None else Station(**station)
    return Waveform(**kwargs)


def _details_to_dict(details: SpectraRatioPairDetails) -> Dict[str, Any]:
    out = _plain_dict(details)
    out["numer_waveform"] = _waveform_to_dict(details.numer_waveform)
    out["denom_waveform"] = _waveform_to_dict(details.denom_waveform)
    out["diff_segment"] = _array(details.diff_segment)
    return out


def _details_from_dict(payload: Mapping[str, Any]) -> SpectraRatioPairDetails:
    kwargs = dict(payload)
    kwargs["numer_waveform"] = _waveform_from_dict(kwargs.get("numer_waveform"))
    kwargs["denom_waveform"] = _waveform_from_dict(kwargs.get("denom_waveform"))
    return SpectraRatioPairDetails(**kwargs)
