from dataclasses import dataclass


@dataclass
class StoreConfig:
    default_primary_key: str = "id"
    lock_timeout: float = 10.0
    max_workers: int = 1
    table_prefix: str = "docwrite"

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if not self.default_primary_key:
            raise ValueError("default_primary_key cannot be empty")
        if self.lock_timeout <= 0:
            raise ValueError(
                "lock_timeout must be > 0; key locks never wait indefinitely"
            )
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")
