from datetime import date, datetime, timezone
from io import BytesIO
from pathlib import Path

import pytest

from prg_convert.common.errors import (
    ConfigError,
    MalformedDocumentError,
    UnresolvedReferenceError,
    UnsupportedValueError,
)
from prg_convert.common.models import ComponentKind, TercEntry
from prg_convert.dialects.base import get_dialect, href_key
from prg_convert.dialects.model2012 import ID_PREFIX, Model2012Dialect
from prg_convert.dialects.model2021 import Model2021Dialect
from prg_convert.parsing.tokens import iter_tokens
from prg_convert.pipeline.teryt import load_terc

FIXTURES = Path("tests/fixtures")

NS_2012 = (
    'xmlns:gml="http://www.opengis.net/gml/3.2" '
    'xmlns:xlink="http://www.w3.org/1999/xlink" '
    'xmlns:prg-ad="urn:prg-ad" xmlns:mua="urn:mua" xmlns:bt="urn:bt"'
)
NS_2021 = (
    'xmlns:gml="http://www.opengis.net/gml/3.2" '
    'xmlns:xlink="http://www.w3.org/1999/xlink" xmlns:prgad="urn:prgad"'
)


def _ms(value: str) -> int:
    return int(datetime.fromisoformat(value).astimezone(timezone.utc).timestamp() * 1000)


def _doc(ns: str, body: str) -> bytes:
    return f"<gml:FeatureCollection {ns}>{body}</gml:FeatureCollection>".encode("utf-8")


def _tokens(data: bytes):
    return iter_tokens(BytesIO(data))


def _records(dialect, data: bytes):
    dictionary = dialect.build_dictionary(_tokens(data))
    return list(dialect.assemble(_tokens(data), dictionary, source="inline"))


def _fixture_records(dialect, name: str):
    return _records(dialect, (FIXTURES / name).read_bytes())


def test_model2012_dictionary_covers_all_components():
    data = (FIXTURES / "sample_model2012.xml").read_bytes()

    dictionary = Model2012Dialect().build_dictionary(_tokens(data))

    assert dictionary[ID_PREFIX + "PL.PZGiK.200.JA_0"].kind is ComponentKind.COUNTRY
    assert dictionary[ID_PREFIX + "PL.PZGiK.200.JA_0"].teryt_id is None
    assert dictionary[ID_PREFIX + "PL.PZGiK.200.JA_0201011"].kind is ComponentKind.MUNICIPALITY
    city = dictionary[ID_PREFIX + "PL.PZGiK.200.MSC_0935850"]
    assert (city.kind, city.name, city.teryt_id) == (ComponentKind.CITY, "Bolesławiec", "0935850")
    street = dictionary[ID_PREFIX + "PL.PZGiK.200.UL_09435"]
    assert (street.kind, street.name, street.teryt_id) == (ComponentKind.STREET, "ul. Tadeusza Kościuszki", "09435")


def test_model2012_assembles_full_record():
    first, _second = _fixture_records(Model2012Dialect(), "sample_model2012.xml")

    assert first.local_id == "a1b2c3d4-0001"
    assert first.namespace == "PL.PZGiK.200.PRG"
    assert first.version_ms == _ms("2019-05-13T10:15:30+02:00")
    assert first.lifecycle_start_ms == _ms("2019-05-13T08:15:30+00:00")
    assert first.valid_from == date(2012, 1, 1)
    assert first.valid_to is None
    assert (first.voivodeship, first.county, first.municipality) == ("dolnośląskie", "bolesławiecki", "Bolesławiec")
    assert (first.voivodeship_teryt_id, first.county_teryt_id, first.municipality_teryt_id) == ("02", "0201", "0201011")
    assert (first.city, first.city_teryt_id) == ("Bolesławiec", "0935850")
    assert first.city_part is None
    assert (first.street, first.street_teryt_id) == ("Tadeusza Kościuszki", "09435")
    assert (first.house_number, first.postcode, first.status) == ("12A", "59-700", "istniejacy")
    assert first.coords.x2180 == 261000.0
    assert first.coords.y2180 == 377000.0


def test_model2012_unresolved_reference_and_nan_position_are_not_fatal():
    _first, second = _fixture_records(Model2012Dialect(), "sample_model2012.xml")

    assert second.voivodeship_teryt_id == "02"
    assert second.county_teryt_id is None
    assert second.coords is None
    assert second.city_part == "Kruszyn"
    assert second.street is None
    assert second.lifecycle_start_ms is None


def test_model2012_strict_references_raise():
    with pytest.raises(UnresolvedReferenceError):
        _fixture_records(Model2012Dialect(strict_references=True), "sample_model2012.xml")


def test_model2012_unknown_element_is_logged_once(caplog):
    with caplog.at_level("INFO", logger="prg_convert"):
        _fixture_records(Model2012Dialect(), "sample_model2012.xml")

    unknown = [record for record in caplog.records if getattr(record, "event", None) == "UNKNOWN_ELEMENT"]
    assert [record.getMessage() for record in unknown] == ["Unknown tag: prg-ad:uwagi"]


def test_model2012_unknown_level_is_fatal():
    data = _doc(
        NS_2012,
        '<prg-ad:PRG_JednostkaAdministracyjnaNazwa gml:id="X"><prg-ad:nazwa>X</prg-ad:nazwa>'
        "<prg-ad:poziom>5poziom</prg-ad:poziom></prg-ad:PRG_JednostkaAdministracyjnaNazwa>",
    )
    with pytest.raises(UnsupportedValueError):
        Model2012Dialect().build_dictionary(_tokens(data))


def test_model2012_blank_teryt_code_keeps_earlier_code():
    data = _doc(
        NS_2012,
        '<prg-ad:PRG_JednostkaAdministracyjnaNazwa gml:id="JA_02"><prg-ad:nazwa>dolnośląskie</prg-ad:nazwa>'
        "<prg-ad:idTERYT>02</prg-ad:idTERYT><mua:idTERYT> </mua:idTERYT><prg-ad:idTERYT/>"
        "<prg-ad:poziom>2poziom</prg-ad:poziom></prg-ad:PRG_JednostkaAdministracyjnaNazwa>",
    )

    dictionary = Model2012Dialect().build_dictionary(_tokens(data))

    assert dictionary[ID_PREFIX + "JA_02"].teryt_id == "02"


def test_model2012_component_without_level_or_id_is_malformed():
    no_level = _doc(
        NS_2012,
        '<prg-ad:PRG_JednostkaAdministracyjnaNazwa gml:id="X"><prg-ad:nazwa>X</prg-ad:nazwa>'
        "</prg-ad:PRG_JednostkaAdministracyjnaNazwa>",
    )
    no_id = _doc(NS_2012, "<prg-ad:PRG_MiejscowoscNazwa><prg-ad:nazwa>X</prg-ad:nazwa></prg-ad:PRG_MiejscowoscNazwa>")
    with pytest.raises(MalformedDocumentError):
        Model2012Dialect().build_dictionary(_tokens(no_level))
    with pytest.raises(MalformedDocumentError):
        Model2012Dialect().build_dictionary(_tokens(no_id))


def test_model2012_too_many_administrative_units_is_fatal():
    units = "".join(f"<prg-ad:jednostkaAdmnistracyjna>{i}</prg-ad:jednostkaAdmnistracyjna>" for i in range(5))
    data = _doc(NS_2012, f"<prg-ad:PRG_PunktAdresowy>{units}</prg-ad:PRG_PunktAdresowy>")
    with pytest.raises(MalformedDocumentError):
        _records(Model2012Dialect(), data)


def test_model2012_wrong_token_count_in_position_is_fatal():
    data = _doc(
        NS_2012,
        "<prg-ad:PRG_PunktAdresowy><prg-ad:pozycja><gml:Point><gml:pos>1.0 2.0 3.0</gml:pos>"
        "</gml:Point></prg-ad:pozycja></prg-ad:PRG_PunktAdresowy>",
    )
    with pytest.raises(MalformedDocumentError):
        _records(Model2012Dialect(), data)


def test_model2012_reference_without_href_is_malformed():
    data = _doc(NS_2012, "<prg-ad:PRG_PunktAdresowy><prg-ad:komponent/></prg-ad:PRG_PunktAdresowy>")
    with pytest.raises(MalformedDocumentError):
        _records(Model2012Dialect(), data)


def test_model2012_truncated_record_is_malformed():
    data = _doc(NS_2012, "<prg-ad:PRG_PunktAdresowy><bt:lokalnyId>a</bt:lokalnyId>")[: -len("</gml:FeatureCollection>")]
    with pytest.raises(MalformedDocumentError):
        _records(Model2012Dialect(), data)


def test_model2012_document_without_addresses_yields_nothing():
    assert _records(Model2012Dialect(), _doc(NS_2012, "")) == []


def _terc():
    return load_terc(FIXTURES / "terc.xml")


def test_model2021_dictionary_builds_cities_and_streets():
    data = (FIXTURES / "sample_model2021.gml").read_bytes()

    dictionary = Model2021Dialect(terc=_terc()).build_dictionary(_tokens(data))

    assert len(dictionary) == 3
    assert dictionary.cities["PL.PZGiK.994.MSC_1"].municipality_teryt_id == "0201011"
    assert dictionary.streets["PL.PZGiK.994.UL_1"].name == "aleja Tysiąclecia"


def test_model2021_assembles_enriched_record():
    first, _second = _fixture_records(Model2021Dialect(terc=_terc()), "sample_model2021.gml")

    assert first.local_id == "b1b2c3d4-0001"
    assert first.version_ms == _ms("2021-09-01T10:00:00+00:00")
    assert first.lifecycle_start_ms == first.version_ms
    assert first.valid_from == date(2015, 3, 20)
    assert (first.city, first.city_teryt_id) == ("Bolesławiec", "0935850")
    assert (first.voivodeship_teryt_id, first.voivodeship) == ("02", "DOLNOŚLĄSKIE")
    assert (first.county_teryt_id, first.county) == ("0201", "bolesławiecki")
    assert (first.municipality_teryt_id, first.municipality) == ("0201011", "Bolesławiec")
    assert (first.street, first.street_teryt_id) == ("aleja Tysiąclecia", "09435")
    assert first.coords is not None


def test_model2021_missing_lookups_leave_fields_empty(caplog):
    with caplog.at_level("INFO", logger="prg_convert"):
        _first, second = _fixture_records(Model2021Dialect(terc=_terc()), "sample_model2021.gml")

    assert second.city == "Zabłocie"
    assert second.city_part == "Bolesławiec"
    assert second.municipality_teryt_id == "9999999"
    assert second.municipality is None
    assert second.voivodeship is None
    assert second.street is None
    assert second.coords is None
    events = [getattr(record, "event", None) for record in caplog.records]
    assert events.count("MUNICIPALITY_NOT_FOUND") == 1


def test_model2021_street_without_type_and_name_is_fatal():
    data = _doc(NS_2021, '<prgad:AD_Ulica gml:id="U"><prgad:identyfikatorULIC>1</prgad:identyfikatorULIC></prgad:AD_Ulica>')
    with pytest.raises(MalformedDocumentError):
        Model2021Dialect(terc={}).build_dictionary(_tokens(data))


def test_href_key_strips_uri_and_fragment_marker():
    assert href_key("#PL.1") == "PL.1"
    assert href_key("http://geoportal.gov.pl/PZGIK/dane/PL.1") == "PL.1"
    assert href_key("PL.1") == "PL.1"


def test_get_dialect_selects_by_version():
    entry = TercEntry("02", "D", "0201", "b", "B")
    assert isinstance(get_dialect("2012"), Model2012Dialect)
    assert get_dialect("2012", strict_references=True).strict_references is True
    assert isinstance(get_dialect("2021", terc={"0201011": entry}), Model2021Dialect)
    assert get_dialect("2021", terc={}).member_extension == ".gml"


def test_get_dialect_rejects_unknown_version_and_missing_terc():
    with pytest.raises(ConfigError):
        get_dialect("2030")
    with pytest.raises(ConfigError):
        get_dialect("2021")
