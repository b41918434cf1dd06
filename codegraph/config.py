from pathlib import Path
from typing import Optional, List
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings."""

    # Graph Store Configuration
    graph_backend: str = Field(default="neo4j", env="GRAPH_BACKEND")
    graph_json_path: str = Field(default="data/graph_data.json", env="GRAPH_JSON_PATH")

    neo4j_uri: str = Field(default="bolt://localhost:7687", env="NEO4J_URI")
    neo4j_username: str = Field(default="neo4j", env="NEO4J_USERNAME")
    neo4j_password: str = Field(default="neo4j", env="NEO4J_PASSWORD")
    neo4j_database: Optional[str] = Field(default=None, env="NEO4J_DATABASE")
    neo4j_batch_size: int = Field(default=100, env="NEO4J_BATCH_SIZE")

    # Extraction Configuration
    project_root: str = Field(default=".", env="PROJECT_ROOT")
    internal_package_prefix: str = Field(default="@workspace/", env="INTERNAL_PACKAGE_PREFIX")
    id_hash_scheme: str = Field(default="blake2b", env="ID_HASH_SCHEME")
    extractor_max_workers: int = Field(default=4, env="EXTRACTOR_MAX_WORKERS")
    max_file_size: int = Field(default=2 * 1024 * 1024, env="MAX_FILE_SIZE")
    ignored_dirs: str = Field(
        default="node_modules,.git,dist,build,.next,coverage",
        env="IGNORED_DIRS"
    )

    # Query Configuration
    query_timeout_seconds: float = Field(default=5.0, env="QUERY_TIMEOUT_SECONDS")
    debug_query_timeout_seconds: float = Field(default=10.0, env="DEBUG_QUERY_TIMEOUT_SECONDS")
    query_limit: int = Field(default=10, env="QUERY_LIMIT")
    debug_query_limit: int = Field(default=20, env="DEBUG_QUERY_LIMIT")
    debug_single_term_limit: int = Field(default=15, env="DEBUG_SINGLE_TERM_LIMIT")
    query_confidence: float = Field(default=0.8, env="QUERY_CONFIDENCE")

    # Logging Configuration
    log_level: str = Field(default="INFO", env="LOG_LEVEL")
    log_file: str = Field(default="logs/codegraph.log", env="LOG_FILE")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def ignored_dirs_set(self) -> set:
        """Get ignored directory names as a set."""
        return {d.strip() for d in self.ignored_dirs.split(",") if d.strip()}

    @property
    def project_root_path(self) -> Path:
        return Path(self.project_root).resolve()

    @property
    def log_dir(self) -> Path:
        """Get log directory path."""
        return Path(self.log_file).parent

    def ensure_directories(self):
        """Ensure necessary directories exist."""
        self.log_dir.mkdir(parents=True, exist_ok=True)


settings = Settings()
settings.ensure_directories()
