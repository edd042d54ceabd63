"""
Pydantic response schemas for the API layer.
Kept separate from ORM models and engine value objects to avoid coupling
transport to storage.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from feedcomposer.engine.pipeline import Connection


# ──────────────────────────── Feed ────────────────────────────────────────

class FeedPost(BaseModel):
    id: str
    source_id: str
    type: str
    title: Optional[str]
    created_at: datetime
    score: float
    private: bool
    author_id: Optional[str]

    class Config:
        from_attributes = True


class FeedEdge(BaseModel):
    node: FeedPost
    cursor: str


class PageInfo(BaseModel):
    has_next_page: bool
    has_previous_page: bool
    start_cursor: Optional[str] = None
    end_cursor: Optional[str] = None


class FeedConnection(BaseModel):
    edges: list[FeedEdge]
    page_info: PageInfo

    @classmethod
    def from_connection(cls, connection: Connection) -> "FeedConnection":
        return cls(
            edges=[
                FeedEdge(node=FeedPost.model_validate(edge.node), cursor=edge.cursor)
                for edge in connection.edges
            ],
            page_info=PageInfo(
                has_next_page=connection.page_info.has_next_page,
                has_previous_page=connection.page_info.has_previous_page,
                start_cursor=connection.page_info.start_cursor,
                end_cursor=connection.page_info.end_cursor,
            ),
        )
