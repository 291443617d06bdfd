"""Tenant directory model."""
from sqlmodel import Field, SQLModel


class Tenant(SQLModel, table=True):
    """One row per business entity (company) whose ERP records we mirror.

    The id is the tenant's numeric system id as assigned upstream; the
    engine only reads this table.
    """

    id: int = Field(primary_key=True)
    name: str
    tax_id: str = ""
    active: bool = Field(default=True, index=True)
