from pydantic import BaseModel


class TagCount(BaseModel):
    name: str
    count: int = 0
