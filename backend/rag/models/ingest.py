"""Typed ingestion requests, one struct per external document kind."""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, TypeAdapter

from backend.rag.models.common import DocumentKind


class _Source(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(min_length=1, description="Document title")
    content: str = Field(description="Raw text to chunk and embed")
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def document_kind(self) -> DocumentKind:
        return DocumentKind(self.kind)  # type: ignore[attr-defined]

    @property
    def source_url(self) -> str | None:
        return None

    def document_metadata(self) -> dict[str, Any]:
        return dict(self.metadata)


class TextSource(_Source):
    """Free text typed or pasted by the user."""

    kind: Literal["text"] = "text"


class UrlSource(_Source):
    """Scraped web page."""

    kind: Literal["url"] = "url"
    url: HttpUrl

    @property
    def source_url(self) -> str | None:
        return str(self.url)


class YoutubeSource(_Source):
    """Video transcript."""

    kind: Literal["youtube"] = "youtube"
    video_url: HttpUrl
    video_id: str | None = None

    @property
    def source_url(self) -> str | None:
        return str(self.video_url)

    def document_metadata(self) -> dict[str, Any]:
        meta = super().document_metadata()
        if self.video_id:
            meta["video_id"] = self.video_id
        return meta


class PdfSource(_Source):
    """Text extracted from an uploaded PDF."""

    kind: Literal["pdf"] = "pdf"
    filename: str = Field(min_length=1)
    page_count: int | None = Field(default=None, ge=0)

    def document_metadata(self) -> dict[str, Any]:
        meta = super().document_metadata()
        meta["filename"] = self.filename
        if self.page_count is not None:
            meta["page_count"] = self.page_count
        return meta


IngestRequest = Annotated[
    Union[TextSource, UrlSource, YoutubeSource, PdfSource],
    Field(discriminator="kind"),
]

ingest_adapter: TypeAdapter[IngestRequest] = TypeAdapter(IngestRequest)
