import datetime as dt
from typing import Annotated, Optional
from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field


def ensure_utc(value: dt.datetime) -> dt.datetime:
    """MongoDB hands back naive datetimes that are implicitly UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.UTC)
    return value.astimezone(dt.UTC)


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


# Standardizes MongoDB ObjectIds to strings
PyObjectId = Annotated[str, BeforeValidator(str)]

UtcDatetime = Annotated[dt.datetime, AfterValidator(ensure_utc)]


class MongoBaseModel(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
        extra='ignore'
    )

    id: Optional[PyObjectId] = Field(None, alias="_id")
