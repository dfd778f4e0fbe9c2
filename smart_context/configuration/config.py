"""Configuration management for the context allocator."""

from functools import lru_cache

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known context window sizes (total input + output) per model family.
# Matched by case-insensitive substring; the longest matching key wins.
DEFAULT_MODEL_CONTEXT_LIMITS: dict[str, int] = {
    # OpenAI
    "gpt-4o-mini": 128_000,
    "gpt-4o": 128_000,
    "gpt-4-turbo": 128_000,
    "gpt-4": 128_000,
    "gpt-3.5-turbo": 16_385,
    # Anthropic
    "claude-3-opus": 200_000,
    "claude-3-sonnet": 200_000,
    "claude-3-haiku": 200_000,
    "claude-3.5-sonnet": 200_000,
    "claude-3.5-haiku": 200_000,
    "claude-4-sonnet": 200_000,
    # Gemini
    "gemini-1.5-pro": 1_000_000,
    "gemini-1.5-flash": 1_000_000,
    "gemini-2.0-flash": 1_000_000,
    "gemini-pro": 1_000_000,
    # Deepseek
    "deepseek-chat": 64_000,
    "deepseek-coder": 64_000,
    "deepseek-reasoner": 64_000,
    # Qwen / Dashscope
    "qwen-turbo": 128_000,
    "qwen-plus": 128_000,
    "qwen-max": 128_000,
    # ZhipuAI
    "glm-4-flash": 128_000,
    "glm-4": 128_000,
}

# Shallow "does this look like source code" heuristics for token estimation.
DEFAULT_CODE_PATTERNS: list[str] = [
    r"function\s+\w+",
    r"class\s+\w+",
    r"import\s+",
    r"export\s+",
    r"const\s+\w+\s*=",
    r"let\s+\w+\s*=",
    r"=>",
    r"\{\s*\n",
]

# Lines kept by code-aware compression.
DEFAULT_CODE_DECLARATION_PATTERNS: list[str] = [
    r"^import\s",
    r"^from\s+\S+\s+import\s",
    r"^export\s",
    r"^(function|class|interface|type|const|let|var|def|async\s+def)\s+\w+",
    r"^\s*(public|private|protected)\s+",
    r"^\s+(def|async\s+def|class)\s+\w+",
]

DEFAULT_PATH_PATTERN = r"[/\\][\w/\\.-]+\.\w+"


class PriorityLevels(BaseModel):
    """Priority of each context part category (0-100, higher survives longer)."""

    system_prompt: int = Field(default=100, ge=0, le=100)
    current_input: int = Field(default=99, ge=0, le=100)
    recent_2_turns: int = Field(default=95, ge=0, le=100)
    recent_4_turns: int = Field(default=85, ge=0, le=100)
    code_context: int = Field(default=75, ge=0, le=100)
    compressed_summary: int = Field(default=60, ge=0, le=100)
    older_history: int = Field(default=50, ge=0, le=100)
    tool_results: int = Field(default=40, ge=0, le=100)

    @model_validator(mode="after")
    def check_pinned_above_recent(self) -> "PriorityLevels":
        """Pinned parts must outrank everything the optimizer may touch."""
        if min(self.system_prompt, self.current_input) < self.recent_2_turns:
            raise ValueError(
                "system_prompt and current_input priorities must be >= recent_2_turns"
            )
        return self


class ContextSettings(BaseSettings):
    """Context allocator settings.

    Every budget constant of the allocator lives here so it can be tuned
    through the environment (or constructor kwargs) without code changes.
    """

    # Token budget
    default_max_tokens: int = Field(default=15_000, gt=0, alias="CONTEXT_DEFAULT_MAX_TOKENS")
    min_context_tokens: int = Field(default=5_000, gt=0, alias="CONTEXT_MIN_CONTEXT_TOKENS")
    reserved_output_tokens: int = Field(
        default=4_000, ge=0, alias="CONTEXT_RESERVED_OUTPUT_TOKENS"
    )
    token_buffer_ratio: float = Field(default=0.15, alias="CONTEXT_TOKEN_BUFFER_RATIO")

    # Sliding window
    min_recent_turns: int = Field(default=4, ge=1, alias="CONTEXT_MIN_RECENT_TURNS")
    max_recent_turns: int = Field(default=8, ge=1, alias="CONTEXT_MAX_RECENT_TURNS")
    recent_token_ratio: float = Field(default=0.6, alias="CONTEXT_RECENT_TOKEN_RATIO")
    avg_tokens_per_message: int = Field(default=150, gt=0, alias="CONTEXT_AVG_TOKENS_PER_MESSAGE")

    # Compression (lengths are in characters)
    compression_enabled: bool = Field(default=True, alias="CONTEXT_COMPRESSION_ENABLED")
    summary_threshold_messages: int = Field(
        default=10, ge=0, alias="CONTEXT_SUMMARY_THRESHOLD_MESSAGES"
    )
    summary_max_length: int = Field(default=400, gt=0, alias="CONTEXT_SUMMARY_MAX_LENGTH")
    tool_result_max_length: int = Field(
        default=3_000, gt=0, alias="CONTEXT_TOOL_RESULT_MAX_LENGTH"
    )
    assistant_max_length: int = Field(default=4_000, gt=0, alias="CONTEXT_ASSISTANT_MAX_LENGTH")
    code_snippet_max_length: int = Field(
        default=4_000, gt=0, alias="CONTEXT_CODE_SNIPPET_MAX_LENGTH"
    )

    # Token estimation
    chars_per_token: float = Field(default=3.5, gt=0, alias="CONTEXT_CHARS_PER_TOKEN")
    code_token_multiplier: float = Field(
        default=1.2, ge=1.0, alias="CONTEXT_CODE_TOKEN_MULTIPLIER"
    )
    token_cache_maxsize: int = Field(default=1_000, ge=2, alias="CONTEXT_TOKEN_CACHE_MAXSIZE")
    token_cache_key_prefix: int = Field(
        default=100, gt=0, alias="CONTEXT_TOKEN_CACHE_KEY_PREFIX"
    )
    code_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CODE_PATTERNS), alias="CONTEXT_CODE_PATTERNS"
    )
    code_declaration_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CODE_DECLARATION_PATTERNS),
        alias="CONTEXT_CODE_DECLARATION_PATTERNS",
    )
    path_pattern: str = Field(default=DEFAULT_PATH_PATTERN, alias="CONTEXT_PATH_PATTERN")

    # Session-level overflow detection and tool output pruning
    overflow_threshold: float = Field(default=0.55, alias="CONTEXT_OVERFLOW_THRESHOLD")
    prune_protect_tokens: int = Field(default=20_000, ge=0, alias="CONTEXT_PRUNE_PROTECT_TOKENS")
    prune_minimum_tokens: int = Field(default=15_000, ge=0, alias="CONTEXT_PRUNE_MINIMUM_TOKENS")
    prune_protect_recent_turns: int = Field(
        default=3, ge=0, alias="CONTEXT_PRUNE_PROTECT_RECENT_TURNS"
    )
    prune_protected_tools: list[str] = Field(
        default_factory=lambda: ["search_pathnames_only"],
        alias="CONTEXT_PRUNE_PROTECTED_TOOLS",
    )
    large_output_threshold: int = Field(
        default=50_000, gt=0, alias="CONTEXT_LARGE_OUTPUT_THRESHOLD"
    )

    # Model limits
    model_context_limits: dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_MODEL_CONTEXT_LIMITS),
        alias="CONTEXT_MODEL_CONTEXT_LIMITS",
    )
    default_context_limit: int = Field(
        default=128_000, gt=0, alias="CONTEXT_DEFAULT_CONTEXT_LIMIT"
    )

    priorities: PriorityLevels = Field(default_factory=PriorityLevels)

    # Usage tracking
    usage_tracking_enabled: bool = Field(default=False, alias="CONTEXT_USAGE_TRACKING_ENABLED")
    usage_max_records: int = Field(default=1_000, gt=0, alias="CONTEXT_USAGE_MAX_RECORDS")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator(
        "token_buffer_ratio", "recent_token_ratio", "overflow_threshold", mode="after"
    )
    @classmethod
    def check_ratio(cls, value: float) -> float:
        """Ratios must lie strictly between 0 and 1."""
        if not 0.0 < value < 1.0:
            raise ValueError(f"ratio must be between 0 and 1 (exclusive), got {value}")
        return value

    @model_validator(mode="after")
    def check_window_bounds(self) -> "ContextSettings":
        if self.min_recent_turns > self.max_recent_turns:
            raise ValueError(
                f"min_recent_turns ({self.min_recent_turns}) must not exceed "
                f"max_recent_turns ({self.max_recent_turns})"
            )
        return self


@lru_cache
def get_settings() -> ContextSettings:
    """Get cached settings instance."""
    return ContextSettings()
