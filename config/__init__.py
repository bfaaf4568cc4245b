import os
import json
import logging
from pathlib import Path
from dotenv import load_dotenv
from .logging_config import setup_app_logging

# Load environment variables from .env file
load_dotenv()

# Get the config directory path (where this file is located)
CONFIG_DIR = Path(__file__).parent
PROJECT_ROOT = CONFIG_DIR.parent

# Load configuration from config.json
config_path = CONFIG_DIR / 'config.json'
with open(config_path, 'r', encoding='utf-8') as f:
    CONFIG = json.load(f)

CONFIG['project_root'] = str(PROJECT_ROOT)

# --- System Prompt Loading ---
# The system prompt is prepended by providers that accept role-tagged turns.
system_prompt_path = CONFIG_DIR / CONFIG.get('system_prompt_file', 'system_prompt.txt')
try:
    with open(system_prompt_path, 'r', encoding='utf-8') as f:
        CONFIG['system_prompt'] = f.read().strip()
except FileNotFoundError:
    raise FileNotFoundError(
        f"System prompt file not found: {system_prompt_path}\n"
        f"Please ensure {system_prompt_path.name} exists in the config directory."
    )

coding_prompt_path = CONFIG_DIR / CONFIG.get('coding_prompt_file', 'coding_system_prompt.txt')
try:
    with open(coding_prompt_path, 'r', encoding='utf-8') as f:
        CONFIG['coding_system_prompt'] = f.read().strip()
except FileNotFoundError:
    # Fallback to main system prompt if the coding prompt is missing
    CONFIG['coding_system_prompt'] = CONFIG['system_prompt']

# Environment variables. Every provider credential is optional: a missing key
# marks that provider as unconfigured rather than failing startup.
ENV = {
    'GROQ_API_KEY': os.getenv('GROQ_API_KEY'),
    'GEMINI_API_KEY': os.getenv('GEMINI_API_KEY'),
    'CODING_API_KEY': os.getenv('CODING_API_KEY'),
    'HF_API_KEY': os.getenv('HF_API_KEY'),
}


def validate_config():
    """Validate that the configuration sections the service relies on are present.

    Credentials are not validated here. Providers report their own configured
    state at construction time and the dispatcher skips the unconfigured ones.
    """
    required_sections = ['providers', 'dispatch', 'sessions']
    for section in required_sections:
        if section not in CONFIG:
            raise ValueError(f"Missing configuration section: {section}")

    orderings = CONFIG['dispatch'].get('orderings', {})
    if 'general' not in orderings:
        raise ValueError("Missing provider ordering for intent: general")


# Validate configuration on module import
validate_config()

# --- Helper function to get config value from CONFIG or environment variable ---
def get_config_value(json_keys: list, env_var_name: str, default_value: any = None):
    """
    Retrieves a configuration value.
    Priority:
    1. Environment variable (if env_var_name is provided and variable is set).
    2. Value from CONFIG dictionary (using json_keys).
    3. default_value.
    """
    # Try environment variable first
    if env_var_name:
        env_value = os.getenv(env_var_name)
        if env_value is not None:
            # Attempt to match type of default_value if it's bool, int or float
            if isinstance(default_value, bool):
                if env_value.lower() == 'true': return True
                if env_value.lower() == 'false': return False
            elif isinstance(default_value, int):
                try:
                    return int(env_value)
                except ValueError:
                    pass # Fall through to JSON or default if not a valid int
            elif isinstance(default_value, float):
                try:
                    return float(env_value)
                except ValueError:
                    pass
            return env_value

    # Try from CONFIG dictionary (loaded from JSON)
    current_level = CONFIG
    try:
        for key in json_keys:
            current_level = current_level[key]
        if isinstance(current_level, (str, int, bool, float, list, dict)) or current_level is None:
            return current_level
    except (KeyError, TypeError):
        pass # Key not found or CONFIG structure not as expected, fall through to default

    # Fallback to default value
    return default_value

# --- Server Configuration ---
# PORT is the conventional variable on hosting platforms, so it wins over config.json.
CONFIG['server'] = {
    'host': get_config_value(['server', 'host'], 'HOST', '0.0.0.0'),
    'port': get_config_value(['server', 'port'], 'PORT', 10000),
}

# --- Logging Configuration ---
CONFIG['logging'] = {
    'level': get_config_value(['logging', 'level'], 'LOG_LEVEL', 'INFO'),
    'file_path': get_config_value(['logging', 'file_path'], 'LOG_FILE_PATH', None),
    'max_bytes': get_config_value(['logging', 'max_bytes'], 'LOG_MAX_BYTES', 5*1024*1024), # 5MB
    'backup_count': get_config_value(['logging', 'backup_count'], 'LOG_BACKUP_COUNT', 3),
    'date_format': get_config_value(
        ['logging', 'date_format'],
        'LOG_DATE_FORMAT',
        '%Y-%m-%d %H:%M:%S'
    )
}

# --- Setup Application Logging ---
setup_app_logging(config=CONFIG.get('logging'))

config_init_logger = logging.getLogger(__name__)
configured = sorted(name for name, value in ENV.items() if value)
config_init_logger.info(
    "[config_init] Configuration loaded. Credentials present for: %s",
    ", ".join(configured) if configured else "none",
)
