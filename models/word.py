from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from typing import List, Optional


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class WordBase(CamelModel):
    word: str
    context: str
    url: str = ""
    source_title: str = ""
    definitions: List[str] = Field(default_factory=list)
    phonetic: Optional[str] = None
    audio_url: Optional[str] = None
    language: str = "en"
    tags: List[str] = Field(default_factory=list)
    is_favorite: bool = False
    note: Optional[str] = None


class WordCreate(WordBase):
    pass


class WordUpdate(CamelModel):
    """Partial edit. `updated_at` is accepted but always replaced by the store."""
    definitions: Optional[List[str]] = None
    phonetic: Optional[str] = None
    audio_url: Optional[str] = None
    context: Optional[str] = None
    source_title: Optional[str] = None
    language: Optional[str] = None
    tags: Optional[List[str]] = None
    is_favorite: Optional[bool] = None
    note: Optional[str] = None
    updated_at: Optional[int] = None


class VocabularyItem(WordBase):
    id: str = Field(min_length=1)
    normalized_word: str
    manually_edited: bool = False
    view_count: int = Field(default=0, ge=0)
    last_viewed_at: Optional[int] = None
    created_at: int = Field(ge=0)
    updated_at: int = Field(ge=0)
    deleted_at: Optional[int] = None


class LookupResult(CamelModel):
    definitions: List[str] = Field(default_factory=list)
    phonetic: Optional[str] = None
    audio_url: Optional[str] = None
