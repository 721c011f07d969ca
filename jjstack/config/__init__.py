"""Config module."""

from typing import Dict, Any
from .models import RepoConfig, UserConfig, JjStackConfig, ToolConfig

class Config(JjStackConfig):
    """Config object holding repository, user and tool config.

    Built from the plain dict produced by ``parse_config`` so callers can
    keep working with nested dicts until the last moment.
    """
    def __init__(self, config: Dict[str, Dict[str, Any]]):
        """Initialize with parsed config dict."""
        super().__init__(
            repo=RepoConfig.model_validate(config.get('repo', {})),
            user=UserConfig.model_validate(config.get('user', {})),
            tool=ToolConfig.model_validate(config.get('tool', {})),
        )

def default_config() -> Config:
    """Get default config without reading any file or running jj."""
    return Config({
        'repo': {
            'github_remote': 'origin',
        },
        'user': {},
        'tool': {
            'jj_binary': 'jj',
        }
    })
