"""Config parser logic."""

import os
from pathlib import Path
from typing import Dict, Union, Any, Optional
import logging
import yaml

# Get module logger
logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".jj-stack.yaml"

SectionConfig = Dict[str, Any]  # Use Any since yaml can return various types
Config = Dict[str, SectionConfig]

def parse_config(path: Union[str, Path, None] = None) -> Config:
    """Parse config from the repository config file and the environment.

    Precedence, lowest first: built-in defaults, ``.jj-stack.yaml``, then the
    ``GITHUB_OWNER``/``GITHUB_REPO`` environment variables. Owner and repo
    left unset here are derived from the remote URL during planning.
    """
    config: Config = {
        'repo': {
            'github_remote': 'origin',
        },
        'user': {},
        'tool': {
            'jj_binary': 'jj',
            'pretend': False,
        }
    }

    config_path = Path(path) if path else Path(CONFIG_FILE_NAME)
    try:
        with open(config_path, 'r') as f:
            logger.info(f"Found {config_path}, loading...")
            file_config: Optional[Dict[str, Any]] = yaml.safe_load(f)
            logger.debug(f"Config from {config_path}: {file_config}")
            if file_config:
                for section in ('repo', 'user', 'tool'):
                    if section in file_config and isinstance(file_config[section], dict):
                        config[section].update(file_config[section])
    except FileNotFoundError:
        logger.debug(f"No {config_path} found, using defaults")

    # Both must be set, a lone owner or repo is ignored
    env_owner = os.environ.get("GITHUB_OWNER")
    env_repo = os.environ.get("GITHUB_REPO")
    if env_owner and env_repo:
        logger.debug(f"Using repository {env_owner}/{env_repo} from environment")
        config['repo']['github_repo_owner'] = env_owner
        config['repo']['github_repo_name'] = env_repo

    return config
