"""Request/response bodies for subscribe and the public catalogue."""

from pydantic import BaseModel, ConfigDict


class SubscribeRequest(BaseModel):
    # Loosely typed on purpose: validate_subscribe_request produces the user-facing messages
    email: str | None = None
    frequency: str | None = None
    consent: bool = False
    problem_list_ids: list[int] | None = None


class SubscriptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    problem_list_id: int
    frequency: str
    is_active: bool


class ProblemListOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    is_active: bool


class ProblemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    problem_list_id: int
    source: str | None = None
    title: str
    url: str
    difficulty: str
    tags: list[str] | None = None
    week: int | None = None
