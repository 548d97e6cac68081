import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from movieshare.models.movie import Movie


def format_file_size(size: Optional[int]) -> str:
    if not size:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    i = 0
    while size >= math.pow(1024, i + 1) and i < len(units) - 1:
        i += 1
    value = round(size / math.pow(1024, i), 2)
    return f"{value:g} {units[i]}"


def format_date(value: Optional[datetime]) -> str:
    if not value:
        return "Unknown date"
    return value.strftime("%Y-%m-%d")


def filter_movies(movies: List[Movie], term: str) -> List[Movie]:
    """Case-insensitive substring match on title or description."""
    needle = (term or "").lower()
    if not needle:
        return list(movies)
    return [
        m for m in movies
        if needle in m.title.lower() or needle in m.description.lower()
    ]


class CatalogView:
    """The loaded catalog plus the current session's permissions."""

    def __init__(self, movies: List[Movie], can_download: bool = False):
        self.movies = movies
        self.can_download = can_download

    def render_card(self, movie: Movie) -> Dict[str, Any]:
        return {
            "id": str(movie.id),
            "title": movie.title,
            "description": movie.description,
            "filename": movie.filename,
            "fileSize": movie.file_size,
            "fileSizeLabel": format_file_size(movie.file_size),
            "thumbnailURL": movie.thumbnail_url,
            "downloadCount": movie.download_count,
            "uploadedBy": movie.uploaded_by,
            "createdAt": movie.created_at.isoformat() if movie.created_at else None,
            "createdLabel": format_date(movie.created_at),
            "downloadEnabled": self.can_download,
            "downloadLabel": "Download" if self.can_download else "Login to Download",
        }

    def render(self, search: str = "") -> Dict[str, Any]:
        matches = filter_movies(self.movies, search)
        if not self.movies:
            empty_message = "No movies available yet. Be the first to upload a movie!"
        elif not matches:
            empty_message = "No movies found matching your search."
        else:
            empty_message = None
        return {
            "movies": [self.render_card(m) for m in matches],
            "total": len(self.movies),
            "count": len(matches),
            "emptyMessage": empty_message,
        }
