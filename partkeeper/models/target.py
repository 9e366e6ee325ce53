"""Per-table lifecycle configuration."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

# PostgreSQL truncates identifiers beyond NAMEDATALEN - 1 bytes
MAX_IDENTIFIER_LENGTH = 63


class TimestampRepresentation(str, Enum):
    """How the time column stores its values."""

    EPOCH_SECONDS = "epoch_seconds"
    EPOCH_MILLIS = "epoch_millis"
    NATIVE_TIMESTAMP = "native_timestamp"


class LifecycleTarget(BaseModel):
    """A base table, its optional dependent table, and how to manage them.

    Attributes:
        schema_name: Schema holding both tables.
        base_table: Time-partitioned (or flat) base table.
        dependent_table: Table referencing base rows by foreign key, if any.
        id_column: Primary identifier column on the base table.
        dependent_fk_column: Column on the dependent table referencing
            ``id_column``. Defaults to ``id_column``.
        timestamp_column: Time column on the base table, used for partition
            bounds and retention.
        dependent_timestamp_column: Time column on the dependent table, used
            by the orphan sweep. Defaults to ``timestamp_column``.
        timestamp_representation: Storage form of both time columns.
        months_to_keep: Retention window in calendar months.
        months_ahead: How many future months the scheduler keeps ready.
        partitioned: Force partitioned (True) or flat (False) purging. When
            unset the catalog decides.
        timestamp_with_time_zone: Whether native time columns are
            ``timestamptz`` (True) or ``timestamp`` (False). When unset each
            column's type is read from the catalog. Ignored for epoch columns.
        chunk_size: Maximum rows removed per delete statement.
    """

    model_config = ConfigDict(frozen=True, use_enum_values=False)

    schema_name: str = Field(default="public", min_length=1, max_length=MAX_IDENTIFIER_LENGTH)
    base_table: str = Field(min_length=1, max_length=MAX_IDENTIFIER_LENGTH)
    dependent_table: Optional[str] = Field(default=None, min_length=1, max_length=MAX_IDENTIFIER_LENGTH)
    id_column: str = Field(default="id", min_length=1, max_length=MAX_IDENTIFIER_LENGTH)
    dependent_fk_column: Optional[str] = Field(default=None, min_length=1, max_length=MAX_IDENTIFIER_LENGTH)
    timestamp_column: str = Field(min_length=1, max_length=MAX_IDENTIFIER_LENGTH)
    dependent_timestamp_column: Optional[str] = Field(
        default=None, min_length=1, max_length=MAX_IDENTIFIER_LENGTH
    )
    timestamp_representation: TimestampRepresentation = TimestampRepresentation.NATIVE_TIMESTAMP
    months_to_keep: int = Field(default=2, ge=0)
    months_ahead: int = Field(default=2, ge=0)
    partitioned: Optional[bool] = None
    timestamp_with_time_zone: Optional[bool] = None
    chunk_size: int = Field(default=10000, ge=1)

    @model_validator(mode="after")
    def _default_dependent_columns(self) -> "LifecycleTarget":
        # frozen model: populate derived defaults through object.__setattr__
        if self.dependent_fk_column is None:
            object.__setattr__(self, "dependent_fk_column", self.id_column)
        if self.dependent_timestamp_column is None:
            object.__setattr__(self, "dependent_timestamp_column", self.timestamp_column)
        return self

    @property
    def has_dependent(self) -> bool:
        """Whether a dependent table is configured."""
        return self.dependent_table is not None

    @property
    def qualified_base(self) -> str:
        """Human-readable ``schema.table`` for logs."""
        return f"{self.schema_name}.{self.base_table}"
