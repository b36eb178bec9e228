"""
Configuration loader for clustering profiles and environment variables.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..spatial.index import ClusterConfig


PROFILE_ENV_VAR = "GEOCLUSTER_PROFILE"
DEFAULT_PROFILE = "default"


class ConfigLoader:
    """Load and manage clustering configuration from YAML files and environment."""

    CONFIG_DIR = Path(__file__).parent.parent / "configs"

    @classmethod
    def available_profiles(cls) -> list:
        """Names of the profiles found in CONFIG_DIR."""
        return sorted(f.stem for f in cls.CONFIG_DIR.glob("*.yaml"))

    @classmethod
    def load_profile_dict(cls, profile_name: str = DEFAULT_PROFILE) -> Dict[str, Any]:
        """
        Load the raw mapping of a clustering profile.

        Args:
            profile_name: Name of the profile (default, dense, sparse)

        Returns:
            Dictionary with configuration values

        Raises:
            FileNotFoundError: If profile doesn't exist
        """
        profile_path = cls.CONFIG_DIR / f"{profile_name}.yaml"

        if not profile_path.exists():
            raise FileNotFoundError(
                f"Profile '{profile_name}' not found. "
                f"Available profiles: {', '.join(cls.available_profiles())}"
            )

        with open(profile_path, "r") as f:
            return yaml.safe_load(f) or {}

    @classmethod
    def load_profile(cls, profile_name: str = DEFAULT_PROFILE) -> ClusterConfig:
        """
        Load a clustering profile as a validated ClusterConfig.

        Raises:
            FileNotFoundError: If profile doesn't exist
            InvalidConfigurationError: If the profile has invalid values
        """
        return ClusterConfig.from_dict(cls.load_profile_dict(profile_name))

    @classmethod
    def load_file(cls, path) -> ClusterConfig:
        """Load a ClusterConfig from an arbitrary YAML file."""
        with open(Path(path), "r") as f:
            return ClusterConfig.from_dict(yaml.safe_load(f) or {})

    @classmethod
    def get_profile_from_env(cls) -> Optional[str]:
        """Get profile name from the GEOCLUSTER_PROFILE environment variable."""
        return os.getenv(PROFILE_ENV_VAR)

    @classmethod
    def load_default_or_env_profile(cls) -> ClusterConfig:
        """
        Load the profile named by the environment, or the default profile.

        Returns:
            Validated configuration
        """
        profile = cls.get_profile_from_env() or DEFAULT_PROFILE
        return cls.load_profile(profile)


def get_config() -> ClusterConfig:
    """Convenience function to get current configuration."""
    return ConfigLoader.load_default_or_env_profile()
