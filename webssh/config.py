from pathlib import Path

from pydantic_settings import BaseSettings


class AppConfig(BaseSettings):
    command: str = "/bin/bash"
    args: list[str] = []
    term: str = "xterm-256color"
    host: str = "127.0.0.1"
    port: int = 8022
    record: bool = False
    recordings_dir: str = "./recordings"
    # Dial mode: connect out to a relay instead of serving HTTP
    dial_url: str = ""
    reconnect_min: float = 5.0
    reconnect_max: float = 60.0

    model_config = {"env_prefix": "WEBSSH_", "env_file": ".env", "extra": "ignore"}

    @property
    def recordings_path(self) -> Path:
        return Path(self.recordings_dir)


config = AppConfig()
