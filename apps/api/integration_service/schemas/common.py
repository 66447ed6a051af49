from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Response models serialise camelCase, matching the record documents."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorResponse(CamelModel):
    success: bool = False
    error: str
    message: str
    details: Optional[list[Any]] = None
    request_id: Optional[str] = None


class DataResponse(CamelModel):
    success: bool = True
    message: Optional[str] = None
    data: Any = None
    request_id: Optional[str] = None
