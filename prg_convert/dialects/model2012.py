"""Schema 2012 (prg-ad / mua / bt namespaces) dictionary and record assembly."""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping

from prg_convert.common.errors import MalformedDocumentError, UnresolvedReferenceError, UnsupportedValueError
from prg_convert.common.logging import log_event
from prg_convert.common.models import UNKNOWN_COMPONENT, AddressRecord, ComponentInfo, ComponentKind
from prg_convert.common.time_utils import parse_date, parse_timestamp_ms
from prg_convert.dialects.base import SchemaDialect, UnknownElementLog, walk_feature
from prg_convert.parsing.tokens import Start, Token, get_attribute
from prg_convert.parsing.tracker import ElementTable, FieldResolver, ReferenceHit
from prg_convert.pipeline.coordinates import Reprojector, parse_gml_pos

ADDRESS_TAG = "prg-ad:PRG_PunktAdresowy"
ADMINISTRATIVE_UNIT_TAG = "prg-ad:PRG_JednostkaAdministracyjnaNazwa"
CITY_TAG = "prg-ad:PRG_MiejscowoscNazwa"
STREET_TAG = "prg-ad:PRG_UlicaNazwa"
COMPONENT_TAGS = frozenset({ADMINISTRATIVE_UNIT_TAG, CITY_TAG, STREET_TAG})

ID_PREFIX = "http://geoportal.gov.pl/PZGIK/dane/"

LEVELS = MappingProxyType(
    {
        "1poziom": ComponentKind.COUNTRY,
        "2poziom": ComponentKind.VOIVODESHIP,
        "3poziom": ComponentKind.COUNTY,
        "4poziom": ComponentKind.MUNICIPALITY,
    }
)

COMPONENT_TABLE = ElementTable(
    fields=MappingProxyType(
        {
            "prg-ad:nazwa": "name",
            "mua:przedrostek1Czesc": "prefix1",
            "mua:przedrostek2Czesc": "prefix2",
            "mua:nazwaCzesc": "name_part",
            "mua:nazwaGlownaCzesc": "main_part",
            "prg-ad:idTERYT": "teryt_id",
            "mua:idTERYT": "teryt_id",
            "prg-ad:poziom": "level",
        }
    ),
)

ADDRESS_TABLE = ElementTable(
    containers=frozenset(
        {
            "prg-ad:idIIP",
            "bt:BT_Identyfikator",
            "prg-ad:cyklZycia",
            "bt:BT_CyklZyciaInfo",
            "prg-ad:pozycja",
            "gml:Point",
        }
    ),
    references=MappingProxyType({"prg-ad:komponent": "xlink:href"}),
    silent=frozenset({"prg-ad:obiektEMUiA"}),
    fields=MappingProxyType(
        {
            "gml:identifier": None,
            "bt:lokalnyId": "local_id",
            "bt:przestrzenNazw": "namespace",
            "bt:wersjaId": "version",
            "bt:poczatekWersjiObiektu": "lifecycle_start",
            "prg-ad:waznyOd": "valid_from",
            "prg-ad:waznyDo": "valid_to",
            # Misspelled in the published schema.
            "prg-ad:jednostkaAdmnistracyjna": "administrative_unit",
            "prg-ad:miejscowosc": "city",
            "prg-ad:czescMiejscowosci": "city_part",
            "prg-ad:ulica": "street",
            "prg-ad:numerPorzadkowy": "house_number",
            "prg-ad:kodPocztowy": "postcode",
            "prg-ad:status": "status",
            "gml:pos": "position",
        }
    ),
)

# Occurrence index of prg-ad:jednostkaAdmnistracyjna -> record attribute; 0 is the country.
ADMINISTRATIVE_UNIT_FIELDS = ("voivodeship", "county", "municipality")

COMPONENT_ID_FIELDS = MappingProxyType(
    {
        ComponentKind.VOIVODESHIP: "voivodeship_teryt_id",
        ComponentKind.COUNTY: "county_teryt_id",
        ComponentKind.MUNICIPALITY: "municipality_teryt_id",
        ComponentKind.CITY: "city_teryt_id",
        ComponentKind.STREET: "street_teryt_id",
    }
)


def construct_full_name_from_parts(prefix1: str, prefix2: str, name_part: str, main_part: str) -> str:
    return " ".join(part for part in (prefix1, prefix2, name_part, main_part) if part)


def _read_component(tokens: Iterator[Token], start: Start) -> tuple[str, ComponentInfo]:
    feature_id = ID_PREFIX + get_attribute(start, "gml:id")
    values: dict[str, str] = {}
    kind = None
    for event in walk_feature(tokens, start.name, FieldResolver(COMPONENT_TABLE)):
        if isinstance(event, ReferenceHit) or event.field is None:
            continue
        if event.field == "level":
            kind = LEVELS.get(event.text)
            if kind is None:
                raise UnsupportedValueError(f"Unexpected value of `prg-ad:poziom`: `{event.text}`.")
        elif event.field == "teryt_id":
            # A blank code never replaces one already read.
            if event.text:
                values["teryt_id"] = event.text
        else:
            values[event.field] = event.text

    if start.name == CITY_TAG:
        kind = ComponentKind.CITY
    if start.name == STREET_TAG:
        kind = ComponentKind.STREET
        name = construct_full_name_from_parts(
            values.get("prefix1", ""),
            values.get("prefix2", ""),
            values.get("name_part", ""),
            values.get("main_part", ""),
        )
    else:
        name = values.get("name")

    if kind is None:
        raise MalformedDocumentError(f"Could not determine kind of component `{feature_id}`.")
    if name is None:
        raise MalformedDocumentError(f"Could not determine name of component `{feature_id}`.")
    return feature_id, ComponentInfo(kind=kind, name=name, teryt_id=values.get("teryt_id") or None)


def build_dictionary(tokens: Iterable[Token]) -> dict[str, ComponentInfo]:
    """Collect every administrative unit, city and street by its href form."""
    stream = iter(tokens)
    dictionary: dict[str, ComponentInfo] = {}
    for token in stream:
        if isinstance(token, Start) and token.name in COMPONENT_TAGS:
            feature_id, info = _read_component(stream, token)
            dictionary[feature_id] = info
    return dictionary


class Model2012Dialect(SchemaDialect):
    version = "2012"
    member_extension = ".xml"

    def __init__(
        self,
        *,
        strict_references: bool = False,
        reprojector: Reprojector | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(reprojector=reprojector, logger=logger)
        self.strict_references = strict_references

    def build_dictionary(self, tokens: Iterable[Token]) -> dict[str, ComponentInfo]:
        return build_dictionary(tokens)

    def assemble(
        self,
        tokens: Iterable[Token],
        dictionary: Mapping[str, ComponentInfo],
        *,
        source: str | None = None,
    ) -> Iterator[AddressRecord]:
        stream = iter(tokens)
        resolver = FieldResolver(ADDRESS_TABLE)
        unknown = UnknownElementLog(self.logger, source)
        for token in stream:
            if isinstance(token, Start) and token.name == ADDRESS_TAG:
                yield self._read_address(stream, resolver, dictionary, unknown, source)

    def _read_address(
        self,
        stream: Iterator[Token],
        resolver: FieldResolver,
        dictionary: Mapping[str, ComponentInfo],
        unknown: UnknownElementLog,
        source: str | None,
    ) -> AddressRecord:
        record = AddressRecord()
        unit_count = 0
        for event in walk_feature(stream, ADDRESS_TAG, resolver):
            if isinstance(event, ReferenceHit):
                self._apply_reference(record, event, dictionary, source)
                continue
            if not event.known:
                unknown.record(event.element)
                continue
            if event.field == "administrative_unit":
                if unit_count > len(ADMINISTRATIVE_UNIT_FIELDS):
                    raise MalformedDocumentError(
                        f"More than {len(ADMINISTRATIVE_UNIT_FIELDS) + 1} administrative units in address "
                        f"`{record.local_id}`."
                    )
                if unit_count > 0:
                    setattr(record, ADMINISTRATIVE_UNIT_FIELDS[unit_count - 1], event.text)
                unit_count += 1
            elif event.field is not None:
                self._apply_field(record, event.field, event.text)
        return record

    def _apply_field(self, record: AddressRecord, field: str, text: str) -> None:
        if field == "local_id":
            record.local_id = text
        elif field == "namespace":
            record.namespace = text
        elif field == "version":
            record.version_ms = parse_timestamp_ms(text)
        elif field == "lifecycle_start":
            record.lifecycle_start_ms = parse_timestamp_ms(text) if text else None
        elif field == "valid_from":
            record.valid_from = parse_date(text) if text else None
        elif field == "valid_to":
            record.valid_to = parse_date(text) if text else None
        elif field == "city":
            record.city = text
        elif field == "city_part":
            record.city_part = text or None
        elif field == "street":
            record.street = text or None
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
        dictionary: Mapping[str, ComponentInfo],
        source: str | None,
    ) -> None:
        if hit.target is None:
            raise MalformedDocumentError(f"Could not find attribute `xlink:href` on element `{hit.element}`.")
        info = dictionary.get(hit.target)
        if info is None:
            if self.strict_references:
                raise UnresolvedReferenceError(f"Reference `{hit.target}` does not match any component.")
            log_event(
                self.logger,
                f"Unresolved reference: {hit.target}",
                level=logging.DEBUG,
                stage="assemble",
                file=source,
                event="UNRESOLVED_REFERENCE",
                status="ignored",
            )
            info = UNKNOWN_COMPONENT
        id_field = COMPONENT_ID_FIELDS.get(info.kind)
        if id_field is not None:
            setattr(record, id_field, info.teryt_id)
