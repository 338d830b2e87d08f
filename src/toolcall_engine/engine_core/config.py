"""
Configuration models for the execution engine.

``EngineConfig`` holds every tunable of a request run: budgets, enrichment
policy, entity extraction and the empty-result retry rules. ``EngineSettings``
reads scalar overrides from the environment (or a ``.env`` file) and merges
them into a config.
"""

from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .logger import get_logger

logger = get_logger(__name__)

# Locality phrases such as "in Porto Alegre", "near Campinas", "moro em Belo Horizonte".
_LOCALITY_PREFIX = r"(?i:\b(?:in|near|around|em|cidade de|moro em|munic[ií]pio de))\s+"
_CAPITALIZED_NAME = r"([A-ZÀ-Ý][^\W\d_]*(?:[ '-](?:(?:de|do|da|dos|das)\s)?[A-ZÀ-Ý][^\W\d_]*)*)"

DEFAULT_HEAVY_FIELDS = ["description", "objective", "content", "full_text", "html_content", "long_description"]
DEFAULT_GROUP_FIELDS = ["parentName", "parent_name", "groupName", "group", "schoolName", "parent.name", "school.name"]
DEFAULT_LEAF_FIELDS = ["name", "title", "courseName", "label"]


class TextSlotRule(BaseModel):
    """Extracts a free-text argument (e.g. a city) from the user's message.

    Attributes:
        name: Argument the extracted value is written to.
        patterns: Regular expressions tried in order; group 1 is the value.
        min_length: Shortest accepted value.
        max_length: Longest accepted value.
        uppercase: Upper-case the value before use.
        clears_coordinates: Whether a value for this slot is a locality filter that
            overrides raw coordinates in the same call.
    """

    name: str
    patterns: List[str]
    min_length: int = 4
    max_length: int = 29
    uppercase: bool = False
    clears_coordinates: bool = True


DEFAULT_CITY_RULE = TextSlotRule(name="city", patterns=[_LOCALITY_PREFIX + _CAPITALIZED_NAME])

# Brazilian state codes (UF). Bare codes match in capitals only; lower case
# matches only after "estado de" or "state of".
_STATE_CODES = r"AC|AL|AP|AM|BA|CE|DF|ES|GO|MA|MT|MS|MG|PA|PB|PR|PE|PI|RJ|RN|RS|RO|RR|SC|SP|SE|TO"

DEFAULT_STATE_RULE = TextSlotRule(
    name="state",
    patterns=[rf"\b({_STATE_CODES})\b", rf"(?i:\b(?:estado d[eo]|state of)\s+({_STATE_CODES}))\b"],
    min_length=2,
    max_length=2,
    uppercase=True,
    clears_coordinates=False,
)


class GeoPoint(BaseModel):
    """A latitude/longitude pair."""

    latitude: float
    longitude: float


class CoordinatePolicy(BaseModel):
    """Which arguments carry coordinates and where defaults come from."""

    latitude_fields: List[str] = Field(default_factory=lambda: ["lat", "latitude", "userLat", "companyLat"])
    longitude_fields: List[str] = Field(default_factory=lambda: ["lon", "lng", "longitude", "userLng", "companyLng"])
    fallback: Optional[GeoPoint] = None

    @property
    def all_fields(self) -> List[str]:
        return [*self.latitude_fields, *self.longitude_fields]


class SlotBinding(BaseModel):
    """Maps a context slot to the argument names that accept its value.

    Attributes:
        slot: Name of the value in the request's context accumulator.
        fields: Argument names that receive the value.
        tools: Optional glob patterns restricting the binding to some tools.
    """

    slot: str
    fields: List[str]
    tools: List[str] = Field(default_factory=list)


class NonEmptyDefault(BaseModel):
    """A conservative value for an argument the backend refuses to receive blank."""

    name: str
    value: Any
    tools: List[str] = Field(default_factory=list)


class EnrichmentPolicy(BaseModel):
    """Rules used to fill in tool arguments the model left unset."""

    pagination_defaults: Dict[str, Any] = Field(default_factory=lambda: {"limit": 10, "page": 1})
    text_slots: List[TextSlotRule] = Field(
        default_factory=lambda: [DEFAULT_CITY_RULE.model_copy(deep=True), DEFAULT_STATE_RULE.model_copy(deep=True)]
    )
    coordinates: CoordinatePolicy = Field(default_factory=CoordinatePolicy)
    flag_defaults: Dict[str, bool] = Field(
        default_factory=lambda: {"isRecommended": True, "recommended": True, "preferred": True}
    )
    inject_same_name: bool = True
    slot_bindings: List[SlotBinding] = Field(
        default_factory=lambda: [SlotBinding(slot="item_id", fields=["id", "itemId"])]
    )
    non_empty_defaults: List[NonEmptyDefault] = Field(default_factory=list)


class ExtractionRule(BaseModel):
    """Captures identifiers from a successful result into the context accumulator.

    Attributes:
        slot: Accumulator slot written by the rule.
        mode: ``list`` stores up to ``max_items`` values, ``first`` stores the first match.
        key_field: Record field holding the identifier.
        require_any: The record must also carry at least one of these fields.
        keep_fields: When set, whole records reduced to these fields are stored instead of bare ids.
        max_items: Upper bound for ``list`` mode.
    """

    slot: str
    mode: Literal["list", "first"] = "list"
    key_field: str = "id"
    require_any: List[str] = Field(default_factory=list)
    keep_fields: List[str] = Field(default_factory=list)
    max_items: int = 5


class EmptyResultRetry(BaseModel):
    """A one-shot retry with broadened arguments for a tool that returned nothing.

    Attributes:
        tools: Glob patterns of tool names the rule applies to.
        overrides: Arguments replaced on retry.
        drop: Arguments removed on retry.
        broaden: String argument shortened to its first word on retry.
        use_fallback_location: Replace coordinates by the configured fallback location.
    """

    tools: List[str] = Field(default_factory=lambda: ["*"])
    overrides: Dict[str, Any] = Field(default_factory=dict)
    drop: List[str] = Field(default_factory=list)
    broaden: Optional[str] = None
    use_fallback_location: bool = False


class CompressionPolicy(BaseModel):
    """Knobs of the result compressor."""

    prune_threshold: int = 3
    chars_per_item: int = 600
    heavy_fields: List[str] = Field(default_factory=lambda: list(DEFAULT_HEAVY_FIELDS))
    group_fields: List[str] = Field(default_factory=lambda: list(DEFAULT_GROUP_FIELDS))
    leaf_fields: List[str] = Field(default_factory=lambda: list(DEFAULT_LEAF_FIELDS))


class EngineConfig(BaseModel):
    """Every tunable of one request run."""

    max_turns: int = Field(default=5, ge=1)
    history_item_limit: int = Field(default=5, ge=1)
    ui_item_limit: int = Field(default=15, ge=1)
    history_window: int = Field(default=10, ge=0)
    empty_result_min_chars: int = 50
    compression: CompressionPolicy = Field(default_factory=CompressionPolicy)
    enrichment: EnrichmentPolicy = Field(default_factory=EnrichmentPolicy)
    extraction_rules: List[ExtractionRule] = Field(
        default_factory=lambda: [
            ExtractionRule(slot="item_ids", mode="list"),
            ExtractionRule(slot="item_id", mode="first", require_any=["name", "title"]),
        ]
    )
    empty_result_retries: List[EmptyResultRetry] = Field(default_factory=list)
    rate_limit_message: str = (
        "System Limit Reached: The AI model is currently overloaded. Please try again later or switch models."
    )
    error_message_template: str = "I encountered an error processing your request: {reason}"

    @classmethod
    def from_file(cls, path: str | Path) -> "EngineConfig":
        """Load a config from a JSON file.

        Args:
            path: Location of the JSON document.

        Returns:
            The validated config.
        """
        logger.info(f"Loading engine config from '{path}'")
        return cls.model_validate_json(Path(path).read_text(encoding="utf-8"))


class EngineSettings(BaseSettings):
    """Environment overrides, read from ``TOOLCALL_ENGINE_*`` variables or a ``.env`` file."""

    model_config = SettingsConfigDict(env_prefix="TOOLCALL_ENGINE_", env_file=".env", extra="ignore")

    config_file: Optional[str] = None
    default_model: Optional[str] = None
    max_turns: Optional[int] = None
    history_item_limit: Optional[int] = None
    ui_item_limit: Optional[int] = None
    history_window: Optional[int] = None
    fallback_latitude: Optional[float] = None
    fallback_longitude: Optional[float] = None

    def to_config(self, base: Optional[EngineConfig] = None) -> EngineConfig:
        """Merge the overrides into a config.

        Args:
            base: Starting point. Defaults to ``config_file`` when set, else to the built-in defaults.

        Returns:
            A new config with every override applied.
        """
        if base is None:
            base = EngineConfig.from_file(self.config_file) if self.config_file else EngineConfig()

        scalars = {
            key: getattr(self, key)
            for key in ("max_turns", "history_item_limit", "ui_item_limit", "history_window")
            if getattr(self, key) is not None
        }
        config = base.model_copy(deep=True, update=scalars)

        if self.fallback_latitude is not None and self.fallback_longitude is not None:
            config.enrichment.coordinates.fallback = GeoPoint(
                latitude=self.fallback_latitude, longitude=self.fallback_longitude
            )
        elif (self.fallback_latitude is None) != (self.fallback_longitude is None):
            logger.warning("Ignoring fallback location: both latitude and longitude must be set.")
        return config
