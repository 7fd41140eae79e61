from pydantic import BaseModel, ConfigDict, Field
from typing import List


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class Alert(_CamelModel):
    title: str
    body: str
    sound: str


class TimerInterval(_CamelModel):
    status: str
    task: str
    starts_at: float = Field(alias="startsAt", allow_inf_nan=False)  # epoch seconds
    current_segment: int = Field(alias="currentSegment", ge=0)
    alert: Alert


class ScheduleRequest(_CamelModel):
    time_intervals: List[TimerInterval] = Field(alias="timeIntervals")
    segment_count: int = Field(alias="segmentCount", ge=0)


class PushTokenRequest(_CamelModel):
    push_token: str = Field(alias="pushToken")
