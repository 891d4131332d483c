from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema serialized with camelCase keys, accepting either spelling on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
