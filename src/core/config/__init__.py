"""
Configuration management subsystem for the reference server.

Static vs Dynamic Configuration
--------------------------------
**Static (Config):**
- Loaded from environment variables at startup (.env supported)
- Includes: Engine API endpoint and credentials, socket URL, logging flags
- Changes require a restart

**Dynamic (ConfigManager):**
- Loaded from YAML defaults under `config/`
- Includes: page size, preload categories, listener timeouts, socket retry policy
- In-memory overrides via `ConfigManager.set`

Usage Examples
--------------
```python
from src.core.config import Config, ConfigManager

api_url = Config.ENGINE_API_URL

ConfigManager.initialize()
page_size = ConfigManager.get("reference.page_size", 100)
```
"""

from src.core.config.config import Config, Environment
from src.core.config.manager import ConfigManager

__all__ = [
    "Config",
    "Environment",
    "ConfigManager",
]
