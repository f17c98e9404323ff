# animelog/models.py
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from animelog.episodes import EpisodeMark, dump_marks
from animelog.errors import ValidationError

# ids and counts are 32-bit signed on the wire
INT_MIN = -2 ** 31
INT_MAX = 2 ** 31 - 1


def check_int_range(value: int, name: str) -> int:
    if not INT_MIN <= value <= INT_MAX:
        raise ValidationError(f"{name} is out of range")
    return value


def require_field(data: Dict[str, Any], key: str, kind, where: str):
    if not isinstance(data, dict):
        raise ValidationError(f"{where} must be an object")
    if key not in data or data[key] is None:
        raise ValidationError(f"{where}.{key} is required")
    value = data[key]
    # bool is an int subclass; reject it where a number is expected
    if kind is int and isinstance(value, bool):
        raise ValidationError(f"{where}.{key} must be an integer")
    if kind is float and isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return float(value)
        except OverflowError:
            raise ValidationError(f"{where}.{key} is out of range") from None
    if not isinstance(value, kind):
        raise ValidationError(f"{where}.{key} has the wrong type")
    if kind is int:
        check_int_range(value, f"{where}.{key}")
    return value


@dataclass
class ImageSet:
    large: str
    common: str
    medium: str
    small: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImageSet":
        return cls(*(require_field(data, k, str, "images") for k in ("large", "common", "medium", "small")))

    def to_dict(self) -> Dict[str, Any]:
        return {"large": self.large, "common": self.common, "medium": self.medium, "small": self.small}


@dataclass
class Tag:
    name: str
    count: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Tag":
        return cls(require_field(data, "name", str, "tag"), require_field(data, "count", int, "tag"))

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "count": self.count}


@dataclass
class Rating:
    rank: int
    total: int
    score: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Rating":
        return cls(require_field(data, "rank", int, "rating"),
                   require_field(data, "total", int, "rating"),
                   require_field(data, "score", float, "rating"))

    def to_dict(self) -> Dict[str, Any]:
        return {"rank": self.rank, "total": self.total, "score": self.score}


@dataclass
class AnimeItem:
    """Catalogue metadata for one show, as fetched from the external catalogue."""
    id: int
    name: str
    name_cn: str
    summary: str
    date: str
    eps: int
    total_episodes: int
    images: ImageSet
    tags: Optional[List[Tag]] = None
    rating: Optional[Rating] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnimeItem":
        tags = data.get("tags") if isinstance(data, dict) else None
        if tags is not None and not isinstance(tags, list):
            raise ValidationError("anime_item.tags must be a list")
        rating = data.get("rating") if isinstance(data, dict) else None
        return cls(
            id=require_field(data, "id", int, "anime_item"),
            name=require_field(data, "name", str, "anime_item"),
            name_cn=require_field(data, "name_cn", str, "anime_item"),
            summary=require_field(data, "summary", str, "anime_item"),
            date=require_field(data, "date", str, "anime_item"),
            eps=require_field(data, "eps", int, "anime_item"),
            total_episodes=require_field(data, "total_episodes", int, "anime_item"),
            images=ImageSet.from_dict(require_field(data, "images", dict, "anime_item")),
            tags=[Tag.from_dict(t) for t in tags] if tags is not None else None,
            rating=Rating.from_dict(rating) if rating is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "id": self.id,
            "name": self.name,
            "name_cn": self.name_cn,
            "summary": self.summary,
            "date": self.date,
            "eps": self.eps,
            "total_episodes": self.total_episodes,
            "images": self.images.to_dict(),
        }
        if self.tags is not None:
            out["tags"] = [t.to_dict() for t in self.tags]
        if self.rating is not None:
            out["rating"] = self.rating.to_dict()
        return out


@dataclass
class AnimeState:
    anime_id: int
    anime_item: AnimeItem
    favorite: bool = False
    watched_episodes: Set[EpisodeMark] = field(default_factory=set)
    visibility: bool = True
    rating: Optional[int] = None  # 1-10

    def to_dict(self) -> Dict[str, Any]:
        return {
            "anime_id": self.anime_id,
            "anime_item": self.anime_item.to_dict(),
            "favorite": self.favorite,
            "watched_episodes": dump_marks(self.watched_episodes),
            "visibility": self.visibility,
            "rating": self.rating,
        }


@dataclass
class WatchList:
    title: str
    archived: bool = False
    animes: List[int] = field(default_factory=list)  # anime ids, in insertion order

    def to_dict(self) -> Dict[str, Any]:
        return {"title": self.title, "archived": self.archived, "animes": list(self.animes)}
