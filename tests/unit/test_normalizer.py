"""Tests for the loadRecords response normalizer. Pure functions only."""
from erpsync.erp.normalizer import ENTITY_DEFINITIONS, normalize_row, parse_entities
from erpsync.models.records import EntityType


def make_body(names, rows, has_more="false"):
    return {
        "entities": {
            "total": str(len(rows)),
            "hasMoreResult": has_more,
            "metadata": {"fields": {"field": [{"name": n} for n in names]}},
            "entity": [
                {f"f{i}": ({"$": v} if v is not None else {}) for i, v in enumerate(row)}
                for row in rows
            ],
        }
    }


class TestParseEntities:
    def test_maps_positional_columns_to_names(self):
        body = make_body(["CODPARC", "NOMEPARC"], [["1", "ACME"], ["2", "Globex"]])
        rows, has_more = parse_entities(body)
        assert rows == [
            {"CODPARC": "1", "NOMEPARC": "ACME"},
            {"CODPARC": "2", "NOMEPARC": "Globex"},
        ]
        assert has_more is False

    def test_single_row_as_bare_dict(self):
        body = make_body(["CODPARC"], [["9"]])
        body["entities"]["entity"] = body["entities"]["entity"][0]
        body["entities"]["metadata"]["fields"]["field"] = {"name": "CODPARC"}
        rows, _ = parse_entities(body)
        assert rows == [{"CODPARC": "9"}]

    def test_empty_cell_becomes_none(self):
        rows, _ = parse_entities(make_body(["CODPARC", "CGC_CPF"], [["1", None]]))
        assert rows[0]["CGC_CPF"] is None

    def test_whitespace_is_stripped(self):
        rows, _ = parse_entities(make_body(["NOMEPARC"], [["  ACME  "]]))
        assert rows[0]["NOMEPARC"] == "ACME"

    def test_has_more_flag(self):
        _, has_more = parse_entities(make_body(["CODPARC"], [["1"]], has_more="true"))
        assert has_more is True

    def test_no_entities(self):
        assert parse_entities({}) == ([], False)
        assert parse_entities({"entities": {"total": "0"}}) == ([], False)


class TestNormalizeRow:
    def test_partner_payload_keys(self):
        row = {"CODPARC": "10", "NOMEPARC": "ACME", "CGC_CPF": "123", "ATIVO": "S"}
        record = normalize_row(EntityType.PARTNER, row)
        assert record.external_id == "10"
        assert record.payload["name"] == "ACME"
        assert record.payload["tax_id"] == "123"
        assert record.payload["erp_active"] == "S"
        # Every mapped field is present, missing ones as None
        assert set(record.payload) == set(ENTITY_DEFINITIONS[EntityType.PARTNER].fields.values())
        assert record.payload["legal_name"] is None

    def test_trade_type_payload_keys(self):
        row = {"CODTIPVENDA": "5", "DESCRTIPVENDA": "A VISTA"}
        record = normalize_row(EntityType.TRADE_TYPE, row)
        assert record.external_id == "5"
        assert record.payload["description"] == "A VISTA"

    def test_row_without_key_is_dropped(self):
        assert normalize_row(EntityType.PARTNER, {"NOMEPARC": "No key"}) is None

    def test_field_list_starts_with_key(self):
        definition = ENTITY_DEFINITIONS[EntityType.TRADE_TYPE]
        assert definition.field_list.split(",")[0] == "CODTIPVENDA"
