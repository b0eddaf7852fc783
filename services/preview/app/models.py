# Data models for the preview service.
#   - PreviewPage / PreviewEntry: in-memory cache records (hold raw image bytes)
#   - Pydantic schemas: request/response shapes of the HTTP API

from dataclasses import dataclass, field
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, Field

# -----------------------------------------------------------------------------
# Cache records
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class PreviewPage:
    source_url: str
    data: bytes

@dataclass(frozen=True)
class PreviewEntry:
    """
    Everything discovery found for one identifier.
    pages is contiguous from index 0: pages[i] is preview page i at the origin.
    """
    identifier: str
    title: str = ""
    pages: List[PreviewPage] = field(default_factory=list)

    @property
    def urls(self) -> List[str]:
        return [p.source_url for p in self.pages]

    def select(self, indexes: List[int]) -> List[bytes]:
        """
        Map logical page indexes to image buffers, in request order.
        Indexes outside [0, len(pages)) are skipped.
        """
        out: List[bytes] = []
        for idx in indexes:
            if 0 <= idx < len(self.pages):
                out.append(self.pages[idx].data)
        return out

# -----------------------------------------------------------------------------
# REST models
# -----------------------------------------------------------------------------

class PreviewResponse(BaseModel):
    """
    Response shape for GET /api/preview/{identifier}.
    """
    images: List[str] # Origin URLs in page order
    title: str = ""

class MakePdfRequest(BaseModel):
    """
    Body of POST /api/make-pdf.

    Two shapes are accepted:
      - {identifier, selectedIndexes}: build from the cached preview pages
      - {images: [url, ...]}: re-fetch each URL and build without the cache
    "stockNum" is accepted as an alias for "identifier".
    """
    identifier: Optional[str] = Field(
        None, validation_alias=AliasChoices("identifier", "stockNum")
    )
    selected_indexes: Optional[List[int]] = Field(
        None, validation_alias=AliasChoices("selectedIndexes", "selected_indexes")
    )
    images: Optional[List[str]] = None
    title: Optional[str] = None # only used by the stateless form for the filename

    @property
    def is_stateless(self) -> bool:
        return self.images is not None and self.selected_indexes is None

class HealthResponse(BaseModel):
    status: str
    service: str
    cached: int # Number of identifiers currently cached
