from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class APIModel(BaseModel):
    model_config = {
        "from_attributes": True,
        "populate_by_name": True,
        "alias_generator": to_camel,
    }

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
