"""Schema 2021 (prgad namespace) dictionaries and record assembly.

Documents of this generation reference cities and streets by gml:id and
no longer carry administrative unit names; those come from the TERC table
keyed by the municipality code each city carries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta, timezone
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping

from prg_convert.common.errors import MalformedDocumentError
from prg_convert.common.logging import log_event
from prg_convert.common.models import AddressRecord, CityInfo, StreetInfo, TercEntry
from prg_convert.common.time_utils import parse_date, parse_timestamp_ms
from prg_convert.dialects.base import SchemaDialect, UnknownElementLog, href_key, walk_feature
from prg_convert.parsing.tokens import Start, Token, get_attribute
from prg_convert.parsing.tracker import ElementTable, FieldResolver, ReferenceHit
from prg_convert.pipeline.coordinates import Reprojector, parse_gml_pos

ADDRESS_TAG = "prgad:AD_PunktAdresowy"
CITY_TAG = "prgad:AD_Miejscowosc"
STREET_TAG = "prgad:AD_Ulica"

# Timestamps written without an offset are Polish summer time.
DEFAULT_OFFSET = timezone(timedelta(hours=2))

STREET_TYPES = MappingProxyType(
    {
        "1": "",
        "2": "aleja",
        "3": "plac",
        "4": "skwer",
        "5": "bulwar",
        "6": "rondo",
        "7": "park",
        "8": "rynek",
        "9": "szosa",
        "10": "droga",
        "11": "osiedle",
        "12": "ogród",
        "13": "wyspa",
        "14": "wybrzeże",
        "15": "",
        "16": "",
    }
)
STREET_TYPE_ABBREVIATIONS = MappingProxyType(
    {
        "2": "al.",
        "3": "pl.",
        "6": "rondo",
        "11": "os.",
    }
)

CITY_TABLE = ElementTable(
    fields=MappingProxyType(
        {
            "prgad:nazwa": "name",
            "prgad:identyfikatorSIMC": "simc_id",
            "prgad:kodTerytGminy": "municipality_teryt_id",
        }
    ),
)
STREET_TABLE = ElementTable(
    fields=MappingProxyType(
        {
            "prgad:identyfikatorULIC": "ulic_id",
            "prgad:typ": "kind",
            "prgad:nazwaGlownaCzesc": "part1",
            "prgad:nazwaCzesc": "part2",
        }
    ),
)

ADDRESS_TABLE = ElementTable(
    containers=frozenset(
        {
            "prgad:idIIP",
            "prgad:AD_IdentyfikatorIIP",
            "prgad:cyklZyciaObiektu",
            "prgad:AD_CyklZyciaObiektu",
            "prgad:pozycja",
            "gml:Point",
        }
    ),
    references=MappingProxyType(
        {
            "prgad:miejscowosc": "xlink:href",
            "prgad:czescMiejscowosci": "xlink:href",
            "prgad:ulica": "xlink:href",
        }
    ),
    fields=MappingProxyType(
        {
            "gml:identifier": None,
            "prgad:koniecWersjiObiektu": None,
            "prgad:lokalnyId": "local_id",
            "prgad:przestrzenNazw": "namespace",
            "prgad:wersjaId": "version",
            "prgad:poczatekWersjiObiektu": "lifecycle_start",
            "prgad:dataNadania": "assigned_on",
            "prgad:numerPorzadkowy": "house_number",
            "prgad:kodPocztowy": "postcode",
            "prgad:status": "status",
            "gml:pos": "position",
        }
    ),
)


def construct_full_name_from_parts(
    part1: str,
    part2: str,
    kind: str,
    *,
    street_types: Mapping[str, str] = STREET_TYPES,
    abbreviations: Mapping[str, str] = STREET_TYPE_ABBREVIATIONS,
) -> str:
    """Build a street name from its type code and name fragments.

    The type word is left out when the main fragment already starts with it
    (or with its usual abbreviation), e.g. type 3 with "pl. Wolności".
    """
    prefix = street_types.get(kind, "")
    lowered = part1.lower()
    abbreviation = abbreviations.get(kind)
    if prefix and (lowered.startswith(prefix) or (abbreviation and lowered.startswith(abbreviation))):
        prefix = ""
    return " ".join(part for part in (prefix, part2, part1) if part)


@dataclass
class Model2021Dictionary:
    cities: dict[str, CityInfo] = field(default_factory=dict)
    streets: dict[str, StreetInfo] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.cities) + len(self.streets)


def _read_values(tokens: Iterator[Token], start: Start, table: ElementTable) -> dict[str, str]:
    values: dict[str, str] = {}
    for event in walk_feature(tokens, start.name, FieldResolver(table)):
        if isinstance(event, ReferenceHit) or event.field is None:
            continue
        values[event.field] = event.text
    return values


def _read_city(tokens: Iterator[Token], start: Start) -> tuple[str, CityInfo]:
    feature_id = get_attribute(start, "gml:id")
    values = _read_values(tokens, start, CITY_TABLE)
    name = values.get("name")
    if not name:
        raise MalformedDocumentError(f"Could not determine name of city `{feature_id}`.")
    return feature_id, CityInfo(
        name=name,
        simc_id=values.get("simc_id") or None,
        municipality_teryt_id=values.get("municipality_teryt_id") or None,
    )


def _read_street(tokens: Iterator[Token], start: Start) -> tuple[str, StreetInfo]:
    feature_id = get_attribute(start, "gml:id")
    values = _read_values(tokens, start, STREET_TABLE)
    kind = values.get("kind", "")
    part1 = values.get("part1", "")
    if not kind and not part1:
        raise MalformedDocumentError(f"Street `{feature_id}` has neither a type nor a name.")
    name = construct_full_name_from_parts(part1, values.get("part2", ""), kind)
    return feature_id, StreetInfo(name=name, ulic_id=values.get("ulic_id") or None)


def build_dictionary(tokens: Iterable[Token]) -> Model2021Dictionary:
    stream = iter(tokens)
    dictionary = Model2021Dictionary()
    for token in stream:
        if not isinstance(token, Start):
            continue
        if token.name == CITY_TAG:
            feature_id, city = _read_city(stream, token)
            dictionary.cities[feature_id] = city
        elif token.name == STREET_TAG:
            feature_id, street = _read_street(stream, token)
            dictionary.streets[feature_id] = street
    return dictionary


class Model2021Dialect(SchemaDialect):
    version = "2021"
    member_extension = ".gml"

    def __init__(
        self,
        *,
        terc: Mapping[str, TercEntry],
        reprojector: Reprojector | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(reprojector=reprojector, logger=logger)
        self.terc = terc

    def build_dictionary(self, tokens: Iterable[Token]) -> Model2021Dictionary:
        return build_dictionary(tokens)

    def assemble(
        self,
        tokens: Iterable[Token],
        dictionary: Model2021Dictionary,
        *,
        source: str | None = None,
    ) -> Iterator[AddressRecord]:
        stream = iter(tokens)
        resolver = FieldResolver(ADDRESS_TABLE)
        unknown = UnknownElementLog(self.logger, source)
        missing_municipalities: set[str] = set()
        for token in stream:
            if not (isinstance(token, Start) and token.name == ADDRESS_TAG):
                continue
            record = AddressRecord()
            for event in walk_feature(stream, ADDRESS_TAG, resolver):
                if isinstance(event, ReferenceHit):
                    self._apply_reference(record, event, dictionary, missing_municipalities, source)
                elif not event.known:
                    unknown.record(event.element)
                elif event.field is not None:
                    self._apply_field(record, event.field, event.text)
            yield record

    def _apply_field(self, record: AddressRecord, field: str, text: str) -> None:
        if field == "local_id":
            record.local_id = text
        elif field == "namespace":
            record.namespace = text
        elif field == "version":
            record.version_ms = parse_timestamp_ms(text, default_offset=DEFAULT_OFFSET)
        elif field == "lifecycle_start":
            record.lifecycle_start_ms = parse_timestamp_ms(text, default_offset=DEFAULT_OFFSET) if text else None
        elif field == "assigned_on":
            record.valid_from = parse_date(text) if text else None
        elif field == "house_number":
            record.house_number = text
        elif field == "postcode":
            record.postcode = text or None
        elif field == "status":
            record.status = text or None
        elif field == "position":
            record.coords = parse_gml_pos(text, self.reprojector)

    def _apply_reference(
        self,
        record: AddressRecord,
        hit: ReferenceHit,
        dictionary: Model2021Dictionary,
        missing_municipalities: set[str],
        source: str | None,
    ) -> None:
        if not hit.target:
            return
        key = href_key(hit.target)
        if hit.element == "prgad:ulica":
            street = dictionary.streets.get(key)
            if street is not None:
                record.street = street.name
                record.street_teryt_id = street.ulic_id
            return
        city = dictionary.cities.get(key)
        if city is None:
            return
        if hit.element == "prgad:czescMiejscowosci":
            record.city_part = city.name
            return
        record.city = city.name
        record.city_teryt_id = city.simc_id
        self._apply_municipality(record, city.municipality_teryt_id, missing_municipalities, source)

    def _apply_municipality(
        self,
        record: AddressRecord,
        code: str | None,
        missing_municipalities: set[str],
        source: str | None,
    ) -> None:
        if code is None:
            return
        record.municipality_teryt_id = code
        entry = self.terc.get(code)
        if entry is None:
            if code not in missing_municipalities:
                missing_municipalities.add(code)
                log_event(
                    self.logger,
                    f"Municipality {code} not found in TERC",
                    level=logging.WARNING,
                    stage="assemble",
                    file=source,
                    event="MUNICIPALITY_NOT_FOUND",
                    status="ignored",
                )
            return
        record.voivodeship_teryt_id = entry.voivodeship_teryt_id
        record.voivodeship = entry.voivodeship_name
        record.county_teryt_id = entry.county_teryt_id
        record.county = entry.county_name
        record.municipality = entry.municipality_name
