"""Pydantic models describing catalog sources and addon payloads."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Annotated, Any, Literal, Mapping, Union
from urllib.parse import parse_qsl, urlparse

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

INTERNAL_SCHEME = "internal"
SUPPORTED_RESOURCES: frozenset[str] = frozenset({"catalog"})


class InnerCatalog(BaseModel):
    """A single content-type scoped catalog exposed by a source."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    type: str
    name: str = ""

    def protocol_fields(self) -> dict[str, Any]:
        """Return the catalog as it appears in a Stremio manifest."""

        return self.model_dump(mode="json", exclude_none=True)


class _SourceBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str = ""
    description: str | None = None
    version: str = "1.0.0"
    custom_name: str | None = Field(default=None, alias="customName")
    catalogs: list[InnerCatalog] = Field(default_factory=list)
    resources: list[Any] = Field(default_factory=list)
    types: list[str] = Field(default_factory=list)

    def display_name(self, catalog: InnerCatalog) -> str:
        """Return the name shown for ``catalog`` in the aggregate manifest."""

        custom = (self.custom_name or "").strip()
        return custom or catalog.name

    def resource_names(self) -> set[str]:
        """Return advertised resource names, flattening object-form entries."""

        names: set[str] = set()
        for resource in self.resources:
            if isinstance(resource, str):
                names.add(resource)
            elif isinstance(resource, Mapping) and resource.get("name"):
                names.add(str(resource["name"]))
        return names

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ExternalSource(_SourceBase):
    """A third-party addon reached over HTTP."""

    kind: Literal["external"] = "external"
    endpoint: str


class InternalSource(_SourceBase):
    """A synthetic source computed in-process by a registered provider."""

    kind: Literal["internal"] = "internal"
    provider: str
    handle: str = ""

    @property
    def endpoint(self) -> str:
        return f"{INTERNAL_SCHEME}://{self.provider}/{self.handle}"


CatalogSource = Annotated[
    Union[ExternalSource, InternalSource], Field(discriminator="kind")
]

_SOURCE_ADAPTER: TypeAdapter[ExternalSource | InternalSource] = TypeAdapter(
    CatalogSource
)


def parse_source(payload: Mapping[str, Any]) -> ExternalSource | InternalSource:
    """Validate a stored source payload into the tagged source union.

    Payloads written before sources carried a ``kind`` are upgraded: an
    ``internal://<provider>/<handle>`` endpoint marks an internal source and
    anything else is treated as an external addon.
    """

    data = dict(payload)
    if "kind" not in data:
        endpoint = str(data.get("endpoint") or "")
        parsed = urlparse(endpoint)
        if parsed.scheme == INTERNAL_SCHEME:
            data["kind"] = "internal"
            data.setdefault("provider", parsed.netloc)
            data.setdefault("handle", parsed.path.strip("/"))
            data.pop("endpoint", None)
        else:
            data["kind"] = "external"
    return _SOURCE_ADAPTER.validate_python(data)


@dataclass(slots=True)
class CatalogRequest:
    """An incoming ``{type, id}`` catalog request with optional extras."""

    type: str
    id: str
    extra: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_path(
        cls, content_type: str, catalog_id: str, extra_segment: str | None = None
    ) -> "CatalogRequest":
        """Build a request from the Stremio path segments.

        ``extra_segment`` uses the protocol's ``key=value&key=value`` form.
        """

        extra: dict[str, str] = {}
        if extra_segment:
            for key, value in parse_qsl(extra_segment, keep_blank_values=False):
                if key:
                    extra[key] = value
        return cls(type=content_type, id=catalog_id, extra=extra)


@dataclass(frozen=True, slots=True)
class UserKeys:
    """Third-party API keys a user has saved alongside their sources."""

    mdblist_api_key: str | None = None
    rpdb_api_key: str | None = None


class ManifestCatalog(BaseModel):
    """A catalog entry in the aggregate manifest."""

    model_config = ConfigDict(extra="allow")

    type: str
    id: str
    name: str
    source: str | None = None


class BehaviorHints(BaseModel):
    configurable: bool = True
    configuration_required: bool = Field(
        default=False, serialization_alias="configurationRequired"
    )


class AddonManifest(BaseModel):
    """The single manifest describing every catalog a user has attached."""

    id: str
    version: str
    name: str
    description: str
    logo: str | None = None
    background: str | None = None
    resources: list[str] = Field(default_factory=list)
    types: list[str] = Field(default_factory=list)
    catalogs: list[ManifestCatalog] = Field(default_factory=list)
    behavior_hints: BehaviorHints = Field(
        default_factory=BehaviorHints, serialization_alias="behaviorHints"
    )
    id_prefixes: list[str] = Field(
        default_factory=list, serialization_alias="idPrefixes"
    )

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON document served at ``manifest.json``."""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
