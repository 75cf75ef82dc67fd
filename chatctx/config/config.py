"""
Read and write the configuration of a chat conversation.

The settings are read, in order of priority, from the arguments given
to the constructor, from the configuration file chatctx.toml in the
working directory, and from environment variables prefixed by
CHATCTX_ (nested fields use a double underscore, as in
CHATCTX_BUDGET__MAX_TOKENS).

Example of chatctx.toml:

    ```toml
    endpoint = "https://api.openai.com/v1/chat/completions"
    model = "gpt-3.5-turbo"
    system_prompt = "You are a helpful assistant."
    stream = true

    [budget]
    max_tokens = 4096
    max_gen_tokens = 2048
    max_gen_tokens_enabled = true
    tokens_margin = 1024

    [sampling]
    temperature = 0.7
    temperature_enabled = true
    ```

The credential (api_key) is never written to the configuration file
by the functions of this module; provide it through the environment
(CHATCTX_API_KEY) or programmatically.
"""

from pathlib import Path
from typing import Any, Self

from pydantic import (
    BaseModel,
    Field,
    field_validator,
    model_validator,
)
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

DEFAULT_CONFIG_FILE = "chatctx.toml"
DEFAULT_ENDPOINT = "https://api.openai.com/v1/chat/completions"
DEFAULT_MODEL = "gpt-3.5-turbo"

# fields not exported to the configuration file
_PRIVATE_FIELDS = {'api_key'}


class BudgetSettings(BaseModel):
    """
    Token budget of a conversation.

    Attributes:
        max_tokens: hard ceiling of the tokens of a request payload
        max_gen_tokens: cap on the tokens generated in a response
        max_gen_tokens_enabled: send max_gen_tokens in the request
        tokens_margin: slack below the ceiling at which the oldest
            messages start being evicted
    """

    max_tokens: int = Field(
        default=4096, ge=1, description="Hard token ceiling"
    )
    max_gen_tokens: int = Field(
        default=2048,
        ge=1,
        description="Maximum number of tokens to generate",
    )
    max_gen_tokens_enabled: bool = True
    tokens_margin: int = Field(
        default=1024,
        ge=0,
        description="Tokens reserved below the ceiling",
    )

    model_config = SettingsConfigDict(frozen=True, extra='forbid')

    @model_validator(mode='after')
    def validate_margin(self) -> Self:
        if self.tokens_margin >= self.max_tokens:
            raise ValueError(
                f"tokens_margin ({self.tokens_margin}) must be smaller "
                + f"than max_tokens ({self.max_tokens})"
            )
        return self


class SamplingSettings(BaseModel):
    """
    Decoding parameters. Temperature and top_p are only sent when
    enabled; the penalties are always sent.
    """

    temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Controls randomness in model responses (0.0-2.0)",
    )
    temperature_enabled: bool = True
    top_p: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        description="Nucleus sampling probability mass",
    )
    top_p_enabled: bool = False
    presence_penalty: float = Field(default=0.0, ge=-2.0, le=2.0)
    frequency_penalty: float = Field(default=0.0, ge=-2.0, le=2.0)
    json_mode: bool = Field(
        default=False,
        description="Request a JSON object as response",
    )

    model_config = SettingsConfigDict(frozen=True, extra='forbid')


class ChatSettings(BaseSettings):
    """
    A pydantic settings object with the configuration of a chat
    conversation and of the endpoint it is sent to.

    Attributes:
        api_key: bearer credential, sent only as a request header
        endpoint: URL of the chat completion endpoint
        model: model identifier sent with the request
        system_prompt: text of the leading system message (omitted if
            blank)
        tools_string: JSON list of tool descriptors (omitted if blank)
        stream: request an event stream instead of a complete
            response
        budget: token budget
        sampling: decoding parameters
    """

    api_key: str = Field(default="", repr=False)
    endpoint: str = DEFAULT_ENDPOINT
    model: str = DEFAULT_MODEL
    system_prompt: str = ""
    tools_string: str = ""
    stream: bool = True
    budget: BudgetSettings = Field(default_factory=BudgetSettings)
    sampling: SamplingSettings = Field(
        default_factory=SamplingSettings
    )

    model_config = SettingsConfigDict(
        toml_file=DEFAULT_CONFIG_FILE,
        env_prefix="CHATCTX_",
        env_nested_delimiter="__",
        frozen=True,
        extra='ignore',
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize the order of settings sources."""
        return (
            init_settings,
            TomlConfigSettingsSource(settings_cls),
            env_settings,
        )

    @field_validator('endpoint', 'model', mode='after')
    @classmethod
    def validate_single_line(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("Value cannot be empty")
        if '\n' in cleaned or '\r' in cleaned:
            raise ValueError(
                "Value cannot contain newlines or carriage returns."
            )
        return cleaned

    def from_instance(self, **overrides: Any) -> 'ChatSettings':
        """
        A validated copy of these settings with some fields modified.
        Nested settings may be given as dictionaries of the fields
        to modify.

        Example:
            ```python
            settings = settings.from_instance(
                model="gpt-4o", budget={'max_tokens': 8192}
            )
            ```
        """
        data: dict[str, Any] = self.model_dump()
        for key, value in overrides.items():
            if isinstance(value, dict) and isinstance(
                data.get(key), dict
            ):
                data[key] = {**data[key], **value}
            elif isinstance(value, BaseModel):
                data[key] = value.model_dump()
            else:
                data[key] = value
        return type(self)(**data)


def serialize_settings(sets: BaseSettings) -> str:
    """Transform the settings into a string in TOML format. The
    credential is left out.

    Args:
        sets: The settings object to serialize

    Returns:
        TOML formatted string representation of settings
    """
    import tomlkit

    doc = tomlkit.document()
    doc.add(tomlkit.comment("Configuration file"))
    doc.add(tomlkit.nl())

    data: dict[str, Any] = sets.model_dump(exclude=_PRIVATE_FIELDS)
    tables: dict[str, dict[str, Any]] = {}
    for key, value in data.items():
        if isinstance(value, dict):
            tables[key] = value  # type: ignore
        elif value is not None:
            doc[key] = value
    # tables must follow the plain keys in TOML
    for key, value in tables.items():
        tbl = tomlkit.table()
        for kkey, vvalue in value.items():
            if vvalue is not None:
                tbl[kkey] = vvalue
        doc[key] = tbl

    return str(tomlkit.dumps(doc))  # type: ignore


def export_settings(
    settings: BaseSettings, file_path: str | Path | None = None
) -> None:
    """Save settings to file in TOML format.

    Args:
        settings: A settings object to save
        file_path: The settings file path (defaults to chatctx.toml)

    Raises:
        OSError: If file cannot be written
    """
    if file_path is None:
        file_path = DEFAULT_CONFIG_FILE

    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    with file_path.open("w", encoding="utf-8") as f:
        f.write(serialize_settings(settings))


def create_default_config_file(
    file_path: str | Path | None = None,
) -> None:
    """Create a configuration file with default values, replacing
    the file if it exists.

    Args:
        file_path: Target file path (defaults to chatctx.toml)
    """
    if file_path is None:
        file_path = DEFAULT_CONFIG_FILE

    file_path = Path(file_path)
    if file_path.exists():
        # otherwise, it will be read in
        file_path.unlink()

    export_settings(ChatSettings(), file_path)


def load_settings(file_path: str | Path | None = None) -> ChatSettings:
    """Load settings from TOML file.

    Args:
        file_path: Path to settings file (defaults to chatctx.toml)

    Returns:
        Loaded settings object

    Raises:
        FileNotFoundError: If settings file doesn't exist
        ValueError: If settings file is invalid
    """
    if file_path is None:
        file_path = DEFAULT_CONFIG_FILE

    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(
            f"Settings file not found: {file_path}"
        )

    try:
        # Create a temporary settings class with the specified file
        class FileSettings(ChatSettings):
            model_config = SettingsConfigDict(
                toml_file=str(file_path),
                env_prefix="CHATCTX_",
                env_nested_delimiter="__",
                frozen=True,
                extra='ignore',
            )

        return FileSettings()
    except Exception as e:
        raise ValueError(
            f"Failed to load settings from {file_path}: {e}"
        ) from e
