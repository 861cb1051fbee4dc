from pathlib import Path
from dotenv import dotenv_values
from pydantic import Field
from pydantic_settings import BaseSettings

import os

# Explicitly load .env for local/dev environments only if values are missing from the environment
BASE_DIR = Path(__file__).resolve().parent.parent.parent
env_file = BASE_DIR / ".env"

if env_file.exists():
    file_env = dotenv_values(env_file)
    missing_keys = {k: v for k, v in file_env.items() if k not in os.environ and v is not None}
    for k, v in missing_keys.items():
        os.environ[k] = v


class Settings(BaseSettings):
    """World generation settings pulled from WORLDGEN_* environment variables."""

    # World Configuration
    world_width: int = Field(default=64, gt=0, description="World width in tiles")
    world_height: int = Field(default=64, gt=0, description="World height in tiles")
    seed: int = Field(default=1, description="Seed for the world PRNG")

    # River Configuration
    min_river_length: int = Field(default=3, description="Rivers this short or shorter are discarded")
    river_attempts: int = Field(default=2000, description="Start cells tried before giving up on a river")
    river_count: int = Field(default=1, description="Rivers traced per world")

    # Noise Configuration
    noise_hurst: float = Field(default=0.5, description="Default Hurst exponent")
    noise_lacunarity: float = Field(default=2.0, description="Default lacunarity")

    # Erosion Configuration
    erosion_amount: float = Field(default=0.05, description="Soil eroded from the river bed per tick")
    bank_erosion_amount: float = Field(default=0.05, description="Soil eroded from river banks")
    bank_deposition_amount: float = Field(default=0.05, description="Soil deposited on river banks")
    use_slope_modifier: bool = Field(default=False, description="Let slope and flux modulate erosion")
    vertical_scaling: float = Field(default=100.0, description="Elevation scale for OBJ export")
    hydrology_ticks: int = Field(default=400, description="Iterations of the hydrology driver")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Logging format (console or json)")

    # Output Configuration
    output_dir: str = Field(default="./output", description="Directory for debug dumps")

    class Config:
        env_prefix = "WORLDGEN_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


# Instantiate singleton settings object
settings = Settings()
