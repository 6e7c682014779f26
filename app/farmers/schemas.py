from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class FarmerData(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: UUID
    full_name: str
    avatar_url: Optional[str] = None
    location: Optional[str] = None


class FarmersSearchResponseModel(BaseModel):
    farmers: List[FarmerData]
