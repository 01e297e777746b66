"""
Shared model helpers: camelCase API schemas and append-only tables.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy import event

from brrp.core.errors import ImmutableRecordError


class CamelModel(BaseModel):
    """API schema that speaks camelCase on the wire and accepts snake_case too."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def append_only(model):
    """Class decorator: reject ORM updates and deletes on ``model`` rows."""

    def _reject(mapper, connection, target):
        raise ImmutableRecordError(
            f"{model.__tablename__} rows are append-only (id={target.id})"
        )

    event.listen(model, "before_update", _reject)
    event.listen(model, "before_delete", _reject)
    return model
