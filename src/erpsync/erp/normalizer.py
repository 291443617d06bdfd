"""
ERP loadRecords response normalizer.

The ERP's CRUDServiceProvider.loadRecords service returns rows as
positional columns rather than named fields:

    "responseBody": {
        "entities": {
            "total": "2",
            "hasMoreResult": "false",
            "metadata": {"fields": {"field": [{"name": "CODPARC"}, ...]}},
            "entity": [{"f0": {"$": "1"}, "f1": {"$": "ACME"}}, ...]
        }
    }

A single row comes back as a bare dict instead of a one-element list, and
an empty field comes back as `{}` instead of `{"$": ""}`. Everything here
is pure so it can be tested without a network or a database.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from erpsync.models.records import EntityType, RemoteRecord


@dataclass(frozen=True)
class EntityDefinition:
    """How one entity type is read from the ERP and mapped to a payload."""

    root_entity: str
    key_field: str
    fields: Dict[str, str]  # ERP field name -> payload key

    @property
    def field_list(self) -> str:
        return ",".join([self.key_field, *self.fields])


ENTITY_DEFINITIONS: Dict[EntityType, EntityDefinition] = {
    EntityType.PARTNER: EntityDefinition(
        root_entity="Parceiro",
        key_field="CODPARC",
        fields={
            "NOMEPARC": "name",
            "RAZAOSOCIAL": "legal_name",
            "CGC_CPF": "tax_id",
            "TIPPESSOA": "person_type",
            "CLIENTE": "is_customer",
            "FORNECEDOR": "is_supplier",
            "CODCID": "city_code",
            "ATIVO": "erp_active",
        },
    ),
    EntityType.TRADE_TYPE: EntityDefinition(
        root_entity="TipoNegociacao",
        key_field="CODTIPVENDA",
        fields={
            "DESCRTIPVENDA": "description",
            "SUBTIPOVENDA": "subtype",
            "DHALTER": "changed_at",
            "ATIVO": "erp_active",
        },
    ),
}


def _cell_value(cell: Any) -> Optional[str]:
    """Extract the scalar from a `{"$": value}` cell; empty cells are None."""
    if isinstance(cell, dict):
        value = cell.get("$")
    else:
        value = cell
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def parse_entities(body: Dict[str, Any]) -> Tuple[List[Dict[str, Optional[str]]], bool]:
    """
    Turn a loadRecords responseBody into named rows.

    Args:
        body: The `responseBody` dict of a successful response.

    Returns:
        (rows, has_more): rows keyed by ERP field name, and whether the
        service reported another page.
    """
    entities = (body or {}).get("entities") or {}
    field_meta = ((entities.get("metadata") or {}).get("fields") or {}).get("field")
    names = [f.get("name") for f in _as_list(field_meta)]

    rows = []
    for raw in _as_list(entities.get("entity")):
        rows.append(
            {name: _cell_value(raw.get(f"f{i}")) for i, name in enumerate(names)}
        )

    has_more = str(entities.get("hasMoreResult", "false")).lower() == "true"
    return rows, has_more


def normalize_row(
    entity_type: EntityType, row: Dict[str, Optional[str]]
) -> Optional[RemoteRecord]:
    """Map one named ERP row onto a RemoteRecord. Rows without a key are dropped."""
    definition = ENTITY_DEFINITIONS[entity_type]
    external_id = row.get(definition.key_field)
    if not external_id:
        return None
    payload = {key: row.get(erp_name) for erp_name, key in definition.fields.items()}
    return RemoteRecord(external_id=external_id, payload=payload)
