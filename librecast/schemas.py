"""
Pydantic read models handed to the UI layer.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ChannelSummary(BaseModel):
    """A channel as shown in the channel list."""
    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Channel ID")
    title: Optional[str] = Field(default=None, description="Channel title from the feed")
    link: Optional[str] = Field(default=None, description="Feed URL, the channel identity")
    description: Optional[str] = Field(default=None, description="Channel description")

    @property
    def display_title(self) -> str:
        return self.title or "-"


class ListeningProgress(BaseModel):
    """Stored playback progress joined onto an episode."""
    model_config = ConfigDict(from_attributes=True)

    position_seconds: float = Field(default=0.0, ge=0.0, description="Resume position")
    finished: bool = Field(default=False, description="Episode was played to the end")


class EpisodeListing(BaseModel):
    """An episode with its listening progress, if any."""
    model_config = ConfigDict(from_attributes=True)

    channel_id: int
    enclosure_url: str
    ordering: int
    title: Optional[str] = None
    link: Optional[str] = None
    source: Optional[str] = None
    description: Optional[str] = None
    guid: Optional[str] = None
    pub_date: Optional[datetime] = None
    listening_state: Optional[ListeningProgress] = Field(
        default=None, description="None means never played"
    )

    @property
    def display_title(self) -> str:
        return self.title or ""

    @property
    def resume_position(self) -> float:
        """Position playback should start from. Finished episodes restart."""
        if self.listening_state is None or self.listening_state.finished:
            return 0.0
        return self.listening_state.position_seconds

    @classmethod
    def from_row(cls, episode, state=None) -> "EpisodeListing":
        """Build a listing from an Episode row and its optional ListeningState row."""
        return cls(
            channel_id=episode.channel_id,
            enclosure_url=episode.enclosure_url,
            ordering=episode.ordering,
            title=episode.title,
            link=episode.link,
            source=episode.source,
            description=episode.description,
            guid=episode.guid,
            pub_date=episode.pub_date,
            listening_state=ListeningProgress.model_validate(state) if state is not None else None,
        )
